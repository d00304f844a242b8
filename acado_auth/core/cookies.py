"""
Refresh token transport.

Refresh tokens travel only in an HttpOnly, Secure, SameSite=None cookie
scoped to "/". Access tokens go in the response body.
"""
from typing import Optional

from fastapi import Request, Response

from acado_auth.config import settings

REFRESH_TOKEN_HEADER = "X-Refresh-Token"


def _cookie_attributes() -> dict:
    return {
        "httponly": True,
        "secure": True,
        "samesite": "none",
        "path": "/",
    }


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        max_age=settings.refresh_cookie_max_age,
        **_cookie_attributes()
    )


def clear_refresh_cookie(response: Response) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value="",
        max_age=0,
        **_cookie_attributes()
    )


def extract_refresh_token(request: Request, body_token: Optional[str] = None) -> Optional[str]:
    """Cookie first, then request body, then the X-Refresh-Token header."""
    token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    if token:
        return token
    if body_token:
        return body_token
    return request.headers.get(REFRESH_TOKEN_HEADER) or None
