"""
Password reset lifecycle: request, supersede, consume.
"""
import logging
import uuid
from typing import Optional
from urllib.parse import urlencode

from fastapi import BackgroundTasks

from acado_auth.config import settings
from acado_auth.core.exceptions import InvalidOrExpiredTokenError
from acado_auth.core.security import get_password_hash
from acado_auth.models.account import Account
from acado_auth.repositories.account_repo import AccountRepository
from acado_auth.repositories.password_reset_repo import PasswordResetRepository
from acado_auth.services.credentials import normalize_email, check_password_policy
from acado_auth.services.email_service import EmailService

logger = logging.getLogger(__name__)


def build_reset_link(token: str, email: str) -> str:
    query = urlencode({"token": token, "email": email})
    return f"{settings.FRONTEND_URL}/reset-password?{query}"


class PasswordResetService:
    """Issues and consumes single-use, time-boxed reset records."""

    def __init__(
        self,
        account_repo: AccountRepository,
        reset_repo: PasswordResetRepository,
        email_service: EmailService
    ):
        self.account_repo = account_repo
        self.reset_repo = reset_repo
        self.email_service = email_service

    async def request_reset(
        self,
        email: str,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Optional[str]:
        """
        Create a reset record for an active account and notify its owner.

        With background_tasks the email goes out after the response is sent,
        so response time does not depend on whether the account exists.

        Returns the new token, or None when nothing was created. Callers must
        respond identically in both cases.
        """
        normalized = normalize_email(email)
        if not normalized:
            return None

        account = await self.account_repo.get_by_email(normalized)
        if account is None or not account.is_active:
            return None

        record = await self.reset_repo.supersede_and_create(normalized)
        logger.info(f"Password reset requested for account {account.id}")

        # Plain values only; the session is closed by the time a task runs
        notify_args = (account.id, account.email, account.name, record.token)
        if background_tasks is not None:
            background_tasks.add_task(self.send_reset_email, *notify_args)
        else:
            await self.send_reset_email(*notify_args)
        return record.token

    async def send_reset_email(self, account_id: uuid.UUID, email: str, name: str, token: str) -> None:
        # The record stays valid if delivery fails; it can be resent
        try:
            sent = await self.email_service.send_templated_email(
                "forgot_password",
                email,
                {
                    "recipientName": name,
                    "resetLink": build_reset_link(token, email),
                    "expiresInMinutes": settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES,
                },
            )
        except Exception:
            logger.exception(f"Failed to send password reset email for account {account_id}")
            return
        if not sent:
            logger.warning(f"Password reset email not delivered for account {account_id}")

    async def consume_reset(self, email: str, token: str, new_password: str) -> Account:
        """
        Set a new password using a reset token.

        The record claim, the credential update and the supersession of any
        other unused records commit as one unit. The session version is left
        alone; callers issue a new session afterwards.
        """
        check_password_policy(new_password, "new_password")

        normalized = normalize_email(email)
        if not normalized or not token:
            raise InvalidOrExpiredTokenError()

        record = await self.reset_repo.get_valid_record(normalized, token)
        if record is None:
            raise InvalidOrExpiredTokenError()

        account = await self.account_repo.get_by_email(normalized)
        if account is None or not account.is_active:
            raise InvalidOrExpiredTokenError()

        password_hash = get_password_hash(new_password)
        try:
            if not await self.reset_repo.stage_claim(record.id):
                # Consumed concurrently, or expired since lookup
                raise InvalidOrExpiredTokenError()
            await self.account_repo.stage_password(account.id, password_hash)
            await self.reset_repo.stage_supersede_others(normalized, record.id)
            await self.reset_repo.commit()
        except Exception:
            await self.reset_repo.rollback()
            raise

        logger.info(f"Password reset completed for account {account.id}")
        return account
