"""
Authentication service - handles all auth operations.
"""
import logging
import uuid
from typing import Optional, List

from fastapi import BackgroundTasks
from sqlmodel.ext.asyncio.session import AsyncSession

from acado_auth.core.exceptions import (
    AlreadyExistsError,
    InvalidCredentialsError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from acado_auth.core.security import get_password_hash, verify_refresh_token
from acado_auth.models.account import Account, AccountRole
from acado_auth.repositories.account_repo import AccountRepository
from acado_auth.repositories.password_reset_repo import PasswordResetRepository
from acado_auth.services.credentials import CredentialVerifier, normalize_email, check_password_policy
from acado_auth.services.email_service import get_email_service
from acado_auth.services.password_reset import PasswordResetService
from acado_auth.services.tokens import IssuedSession, TokenIssuer

logger = logging.getLogger(__name__)


class AuthService:
    """Service for authentication operations."""

    def __init__(self, session: AsyncSession, storage_timeout: Optional[float] = None):
        self.account_repo = AccountRepository(session, storage_timeout)
        self.password_reset_repo = PasswordResetRepository(session, storage_timeout)
        self.email_service = get_email_service()
        self.verifier = CredentialVerifier(self.account_repo)
        self.issuer = TokenIssuer(self.account_repo)
        self.password_reset = PasswordResetService(
            self.account_repo, self.password_reset_repo, self.email_service
        )

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        username: Optional[str] = None,
        organization_id: Optional[str] = None,
        organization_name: Optional[str] = None,
        university_ids: Optional[List[str]] = None,
        course_ids: Optional[List[str]] = None
    ) -> IssuedSession:
        """Register a new learner account and start a session."""
        normalized_email = normalize_email(email)
        if not normalized_email:
            raise ValidationError("Email is required", "email")
        normalized_username = (username or normalized_email).strip().lower()
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required", "name")
        check_password_policy(password)

        if await self.account_repo.get_by_email(normalized_email):
            raise AlreadyExistsError("User", "email")
        if await self.account_repo.get_by_username(normalized_username):
            raise AlreadyExistsError("User", "username")

        account = await self.account_repo.create_account(
            email=normalized_email,
            username=normalized_username,
            password_hash=get_password_hash(password),
            name=name,
            role=AccountRole.LEARNER,
            organization_id=organization_id,
            organization_name=organization_name,
            university_ids=university_ids,
            course_ids=course_ids
        )
        logger.info(f"Account {account.id} registered")

        return await self.issuer.issue_session(account)

    async def login(self, email: str, password: str) -> IssuedSession:
        """Authenticate and start a new session."""
        account = await self.verifier.verify(email, password)
        try:
            session = await self.issuer.issue_session(account)
        except UnauthorizedError:
            # Deactivated between verification and the version bump
            logger.info(f"Login rejected for account {account.id}: deactivated during login")
            raise InvalidCredentialsError()
        logger.info(f"Account {account.id} logged in")
        return session

    async def refresh(self, refresh_token: Optional[str]) -> IssuedSession:
        """
        Rotate a refresh token into a new session.

        Signature/expiry, account state and version are checked in that
        order; every failure is reported as the same UnauthorizedError.
        The rotation itself is a compare-and-swap on the presented version,
        so the presented token is dead afterwards and a concurrent replay
        of it loses.
        """
        claims = verify_refresh_token(refresh_token) if refresh_token else None
        if claims is None:
            logger.info("Refresh rejected: missing or invalid token")
            raise UnauthorizedError()

        try:
            account_id = uuid.UUID(claims.sub)
        except ValueError:
            raise UnauthorizedError()

        account = await self.account_repo.get_fresh(account_id)
        if account is None or not account.is_active:
            logger.info(f"Refresh rejected for account {account_id}: missing or inactive")
            raise UnauthorizedError()

        if claims.ver != account.session_version:
            logger.warning(f"Refresh rejected for account {account_id}: stale session version")
            raise UnauthorizedError()

        return await self.issuer.issue_session(account, expected_version=claims.ver)

    async def logout(
        self,
        refresh_token: Optional[str] = None,
        account_id: Optional[uuid.UUID] = None
    ) -> bool:
        """
        End every session of the account.

        The account is taken from a verifiable refresh token, falling back to
        the authenticated caller. Bad tokens are ignored.

        Returns:
            True if a session version was bumped
        """
        target = None
        claims = verify_refresh_token(refresh_token) if refresh_token else None
        if claims is not None:
            try:
                target = uuid.UUID(claims.sub)
            except ValueError:
                target = None
        if target is None:
            target = account_id
        if target is None:
            return False

        return await self.issuer.revoke_sessions(target) is not None

    async def get_profile(self, account_id: uuid.UUID) -> Account:
        account = await self.account_repo.get(account_id)
        if not account:
            raise NotFoundError("User")
        return account

    async def update_profile(
        self,
        account_id: uuid.UUID,
        name: Optional[str] = None,
        email: Optional[str] = None
    ) -> Account:
        """Update name and/or email."""
        account = await self.get_profile(account_id)

        new_name = None
        if name is not None:
            new_name = name.strip()
            if not new_name:
                raise ValidationError("Name cannot be empty", "name")

        new_email = None
        if email is not None:
            new_email = normalize_email(email)
            if not new_email:
                raise ValidationError("Email cannot be empty", "email")
            existing = await self.account_repo.get_by_email(new_email)
            if existing and existing.id != account.id:
                raise AlreadyExistsError("User", "email")

        return await self.account_repo.update_profile(account, name=new_name, email=new_email)

    async def change_password(
        self,
        account: Account,
        current_password: str,
        new_password: str
    ) -> IssuedSession:
        """
        Change password for a logged-in account.
        Every other session dies because the new session bumps the version.
        """
        if not current_password:
            raise ValidationError("Current password is required", "current_password")
        account = await self.verifier.verify(account.email, current_password)
        check_password_policy(new_password, "new_password")

        await self.account_repo.update_password(account.id, get_password_hash(new_password))
        logger.info(f"Password changed for account {account.id}")

        return await self.issuer.issue_session(account)

    async def forgot_password(
        self,
        email: str,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Optional[str]:
        """Initiate password reset flow. Returns the token for dev responses only."""
        return await self.password_reset.request_reset(email, background_tasks)

    async def reset_password(self, email: str, token: str, new_password: str) -> IssuedSession:
        """Reset password using a token, then start a fresh session."""
        account = await self.password_reset.consume_reset(email, token, new_password)
        return await self.issuer.issue_session(account)
