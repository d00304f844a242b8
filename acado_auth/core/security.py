"""
Security utilities for the Acado auth API.
Password hashing, typed token claims and JWT signing.
"""
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional, List, Literal
import uuid
import secrets

import jwt
import bcrypt
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from acado_auth.config import settings


# bcrypt only looks at the first 72 bytes; longer inputs are rejected upstream
BCRYPT_MAX_BYTES = 72


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    password_bytes = plain_password.encode('utf-8')
    if len(password_bytes) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
    except ValueError:
        # Corrupt or foreign hash format
        return False


def get_password_hash(password: str) -> str:
    """Hash a password."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    return get_password_hash(secrets.token_urlsafe(16))


def burn_password_check(plain_password: str) -> None:
    """Run a throwaway bcrypt comparison so misses cost the same as hits."""
    verify_password(plain_password, _dummy_password_hash())


# Token types
TokenType = Literal["access", "refresh"]


class AccessTokenClaims(BaseModel):
    """
    Claims carried by access tokens.

    Every field is always present in the encoded token:
    optional references are encoded as null and id lists as [].
    No secrets are ever placed here.
    """
    sub: str
    name: str
    email: str
    role: str
    organization_id: Optional[str] = None
    organization_name: Optional[str] = None
    university_ids: List[str] = Field(default_factory=list)
    course_ids: List[str] = Field(default_factory=list)

    @classmethod
    def for_account(cls, account) -> "AccessTokenClaims":
        return cls(
            sub=str(account.id),
            name=account.name,
            email=account.email,
            role=account.role,
            organization_id=account.organization_id,
            organization_name=account.organization_name,
            university_ids=[str(i) for i in account.university_ids or []],
            course_ids=[str(i) for i in account.course_ids or []],
        )


class RefreshTokenClaims(BaseModel):
    """Claims carried by refresh tokens: subject and session version at issuance."""
    sub: str
    ver: int


def _signing_key(token_type: TokenType) -> str:
    if token_type == "refresh":
        return settings.JWT_REFRESH_SECRET
    return settings.JWT_ACCESS_SECRET


def _default_ttl(token_type: TokenType):
    if token_type == "refresh":
        return settings.refresh_token_ttl
    return settings.access_token_ttl


def create_token(claims: BaseModel, token_type: TokenType = "access", expires_delta=None) -> str:
    """
    Create a JWT token.

    Args:
        claims: Typed claim set (AccessTokenClaims or RefreshTokenClaims)
        token_type: 'access' or 'refresh', selects signing key and TTL
        expires_delta: Custom expiration time

    Returns:
        Encoded JWT string
    """
    now = datetime.now(timezone.utc)
    to_encode = claims.model_dump()
    to_encode.update({
        "exp": now + (expires_delta or _default_ttl(token_type)),
        "iat": now,
        "type": token_type,
        "jti": str(uuid.uuid4())
    })

    return jwt.encode(to_encode, _signing_key(token_type), algorithm=settings.ALGORITHM)


def create_access_token(claims: AccessTokenClaims, expires_delta=None) -> str:
    """Create an access token."""
    return create_token(claims, token_type="access", expires_delta=expires_delta)


def create_refresh_token(claims: RefreshTokenClaims, expires_delta=None) -> str:
    """Create a refresh token."""
    return create_token(claims, token_type="refresh", expires_delta=expires_delta)


def decode_token(token: str, token_type: TokenType = "access") -> Optional[dict]:
    """
    Decode and validate a JWT token against the key for its type.

    Returns:
        Decoded payload dict or None if invalid, expired or of the wrong type
    """
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            _signing_key(token_type),
            algorithms=[settings.ALGORITHM],
            options={"require": ["exp", "iat", "sub", "type"]},
        )
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None

    if payload.get("type") != token_type:
        return None
    return payload


def verify_access_token(token: str) -> Optional[AccessTokenClaims]:
    """Validate an access token and return its typed claims."""
    payload = decode_token(token, "access")
    if payload is None:
        return None
    try:
        return AccessTokenClaims.model_validate(payload)
    except PydanticValidationError:
        return None


def verify_refresh_token(token: str) -> Optional[RefreshTokenClaims]:
    """Validate a refresh token and return its typed claims."""
    payload = decode_token(token, "refresh")
    if payload is None:
        return None
    try:
        return RefreshTokenClaims.model_validate(payload)
    except PydanticValidationError:
        return None


def generate_secure_token(length: int = 32) -> str:
    """Generate a secure random token for password reset."""
    return secrets.token_urlsafe(length)
