"""
Credential verification and password policy.
"""
import logging
from typing import Optional

from acado_auth.config import settings
from acado_auth.core.exceptions import InvalidCredentialsError, ValidationError, WeakPasswordError
from acado_auth.core.security import verify_password, burn_password_check, BCRYPT_MAX_BYTES
from acado_auth.models.account import Account
from acado_auth.repositories.account_repo import AccountRepository

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def check_password_policy(password: Optional[str], field: str = "password") -> None:
    """Raise WeakPasswordError unless the password satisfies the policy."""
    if not password or len(password) < settings.PASSWORD_MIN_LENGTH:
        raise WeakPasswordError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
            field
        )
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise WeakPasswordError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes", field)


class CredentialVerifier:
    """Checks an email/password pair against the stored account."""

    def __init__(self, account_repo: AccountRepository):
        self.account_repo = account_repo

    async def verify(self, email: str, password: str) -> Account:
        """
        Return the matching active account or raise InvalidCredentialsError.

        Unknown email, inactive account and wrong password all raise the
        same error after a full bcrypt comparison. Read-only.
        """
        normalized = normalize_email(email)
        if not normalized:
            raise ValidationError("Email is required", "email")
        if not password:
            raise ValidationError("Password is required", "password")

        account = await self.account_repo.get_by_email(normalized)
        if account is None:
            burn_password_check(password)
            logger.info("Login rejected")
            raise InvalidCredentialsError()

        password_ok = verify_password(password, account.password_hash)
        if not password_ok or not account.is_active:
            logger.info(f"Login rejected for account {account.id}")
            raise InvalidCredentialsError()

        return account
