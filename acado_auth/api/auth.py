"""
Authentication API routes.
"""
import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, status

from acado_auth.config import settings
from acado_auth.core.cookies import set_refresh_cookie, clear_refresh_cookie, extract_refresh_token
from acado_auth.core.security import AccessTokenClaims
from acado_auth.schemas.auth import (
    RegisterRequest, LoginRequest, RefreshRequest, SessionResponse, AccountResponse,
    PasswordChangedResponse, UpdateProfileRequest, ForgotPasswordRequest,
    ResetPasswordRequest, ChangePasswordRequest
)
from acado_auth.schemas.common import ForgotPasswordResponse, ErrorResponse
from acado_auth.api.deps import get_auth_service, get_current_account, get_optional_claims
from acado_auth.models.account import Account
from acado_auth.services.auth_service import AuthService
from acado_auth.services.tokens import IssuedSession

router = APIRouter(
    prefix=f"{settings.API_PREFIX}/auth",
    tags=["auth"],
    responses={
        401: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)

FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, a password reset link has been sent."


def _deliver_session(response: Response, issued: IssuedSession) -> dict:
    """Put the refresh token in the cookie and return the body fields."""
    set_refresh_cookie(response, issued.refresh_token)
    return {
        "access_token": issued.access_token,
        "token_type": "bearer",
        "expires_in": issued.expires_in,
        "account": AccountResponse.model_validate(issued.account),
    }


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Register a new learner and start a session."""
    issued = await auth_service.register(
        email=request.email,
        password=request.password,
        name=request.name,
        username=request.username,
        organization_id=request.organization_id,
        organization_name=request.organization_name,
        university_ids=request.university_ids,
        course_ids=request.course_ids
    )
    return SessionResponse(**_deliver_session(response, issued))


@router.post("/login", response_model=SessionResponse)
async def login(
    request: LoginRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Login and get an access token; the refresh token is set as a cookie."""
    issued = await auth_service.login(email=request.email, password=request.password)
    return SessionResponse(**_deliver_session(response, issued))


@router.post("/refresh", response_model=SessionResponse)
async def refresh_token(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Rotate the refresh token and get a new access token."""
    token = extract_refresh_token(request, body.refresh_token if body else None)
    issued = await auth_service.refresh(token)
    return SessionResponse(**_deliver_session(response, issued))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    response: Response,
    claims: Optional[AccessTokenClaims] = Depends(get_optional_claims),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Logout from all devices. Always succeeds and clears the cookie."""
    account_id = None
    if claims is not None:
        try:
            account_id = uuid.UUID(claims.sub)
        except ValueError:
            account_id = None
    await auth_service.logout(extract_refresh_token(request), account_id)
    clear_refresh_cookie(response)


@router.get("/me", response_model=AccountResponse)
async def get_profile(current_account: Account = Depends(get_current_account)):
    """Get current account profile."""
    return AccountResponse.model_validate(current_account)


@router.patch("/me", response_model=AccountResponse)
async def update_profile(
    request: UpdateProfileRequest,
    current_account: Account = Depends(get_current_account),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Update current account profile."""
    account = await auth_service.update_profile(
        current_account.id,
        name=request.name,
        email=request.email
    )
    return AccountResponse.model_validate(account)


@router.post("/change-password", response_model=PasswordChangedResponse)
async def change_password(
    request: ChangePasswordRequest,
    response: Response,
    current_account: Account = Depends(get_current_account),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Change password; every other session is logged out."""
    issued = await auth_service.change_password(
        current_account,
        request.current_password,
        request.new_password
    )
    return PasswordChangedResponse(
        message="Password updated successfully",
        **_deliver_session(response, issued)
    )


@router.post("/forgot-password", response_model=ForgotPasswordResponse, response_model_exclude_none=True)
async def forgot_password(
    request: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Request password reset. The response does not reveal whether the account exists."""
    token = await auth_service.forgot_password(request.email, background_tasks)
    result = ForgotPasswordResponse(message=FORGOT_PASSWORD_MESSAGE)
    # In DEV_MODE, include the token for easy testing
    if settings.DEV_MODE and token:
        result.dev_reset_token = token
    return result


@router.post("/reset-password", response_model=PasswordChangedResponse)
async def reset_password(
    request: ResetPasswordRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Reset password using a token and start a fresh session."""
    issued = await auth_service.reset_password(
        request.email,
        request.token,
        request.new_password
    )
    return PasswordChangedResponse(
        message="Password has been reset successfully.",
        **_deliver_session(response, issued)
    )
