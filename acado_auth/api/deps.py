"""
API dependencies - shared across all routes.
"""
import uuid
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlmodel.ext.asyncio.session import AsyncSession

from acado_auth.database import get_session
from acado_auth.config import settings
from acado_auth.core.exceptions import UnauthorizedError
from acado_auth.core.security import AccessTokenClaims, verify_access_token
from acado_auth.models.account import Account
from acado_auth.services.auth_service import AuthService


oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_PREFIX}/auth/login", auto_error=False
)


def get_auth_service(session: AsyncSession = Depends(get_session)) -> AuthService:
    return AuthService(session)


async def get_current_claims(token: str = Depends(oauth2_scheme)) -> AccessTokenClaims:
    """
    Validate the bearer access token without touching storage.

    Access tokens are not checked against the session version: a revoked
    session keeps working until its access token expires.
    """
    claims = verify_access_token(token)
    if claims is None:
        raise UnauthorizedError()
    return claims


async def get_optional_claims(
    token: Optional[str] = Depends(optional_oauth2_scheme)
) -> Optional[AccessTokenClaims]:
    """Claims of a valid bearer token, or None."""
    if not token:
        return None
    return verify_access_token(token)


async def get_current_account(
    claims: AccessTokenClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service)
) -> Account:
    """Get current authenticated account from the access token."""
    try:
        account_id = uuid.UUID(claims.sub)
    except ValueError:
        raise UnauthorizedError()

    account = await auth_service.account_repo.get(account_id)
    if not account or not account.is_active:
        raise UnauthorizedError()

    return account
