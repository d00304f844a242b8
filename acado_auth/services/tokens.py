"""
Token issuance.

Every issued session first advances the account's session_version and
commits it; tokens are only signed after that write succeeds. A refresh
token embeds the post-increment version, so any later bump (another login,
a rotation, a logout, a password change) kills it.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from acado_auth.config import settings
from acado_auth.core.exceptions import UnauthorizedError
from acado_auth.core.security import (
    AccessTokenClaims,
    RefreshTokenClaims,
    create_access_token,
    create_refresh_token,
)
from acado_auth.models.account import Account
from acado_auth.repositories.account_repo import AccountRepository

logger = logging.getLogger(__name__)


@dataclass
class IssuedSession:
    access_token: str
    refresh_token: str
    expires_in: int  # seconds
    account: Account


class TokenIssuer:
    """Mints access/refresh token pairs against the session version ledger."""

    def __init__(self, account_repo: AccountRepository):
        self.account_repo = account_repo

    async def issue_session(
        self,
        account: Account,
        expected_version: Optional[int] = None
    ) -> IssuedSession:
        """
        Bump the session version, then sign a fresh token pair.

        With expected_version set the bump is a compare-and-swap from that
        value (refresh rotation); a lost race raises UnauthorizedError.
        Without it the bump is unconditional (login, password change).
        """
        if expected_version is None:
            new_version = await self.account_repo.bump_version(account.id, stamp_login=True)
        else:
            new_version = await self.account_repo.compare_and_bump_version(
                account.id, expected_version, stamp_login=True
            )

        if new_version is None:
            logger.info(f"Session issue refused for account {account.id}: version moved or account inactive")
            raise UnauthorizedError()

        access_token = create_access_token(AccessTokenClaims.for_account(account))
        refresh_token = create_refresh_token(
            RefreshTokenClaims(sub=str(account.id), ver=new_version)
        )

        return IssuedSession(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(settings.access_token_ttl.total_seconds()),
            account=account
        )

    async def revoke_sessions(self, account_id: uuid.UUID) -> Optional[int]:
        """
        Invalidate every outstanding refresh token for the account.
        Access tokens stay valid until their own expiry.
        """
        new_version = await self.account_repo.bump_version(account_id, require_active=False)
        if new_version is not None:
            logger.info(f"Sessions revoked for account {account_id}")
        return new_version
