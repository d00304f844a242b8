"""
Custom exceptions for the Acado auth API.
Provides consistent error handling across the application.

Security-sensitive failures use fixed messages so callers cannot tell
which sub-check failed.
"""
from typing import Optional

from fastapi import status


class AcadoAuthException(Exception):
    """Base exception for Acado auth"""
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class InvalidCredentialsError(AcadoAuthException):
    """Email/password did not authenticate (never says why)"""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


class UnauthorizedError(AcadoAuthException):
    """Missing, malformed, expired or replayed token"""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message)


class InvalidOrExpiredTokenError(AcadoAuthException):
    """Password reset token not found, already used, or expired"""
    code = "invalid_or_expired_token"

    def __init__(self):
        super().__init__("Invalid or expired reset token")


class ValidationError(AcadoAuthException):
    """Validation failed"""
    code = "validation_error"

    def __init__(self, message: str = "Validation failed", field: Optional[str] = None):
        self.field = field
        if field:
            message = f"Validation failed for field '{field}': {message}"
        super().__init__(message)


class WeakPasswordError(ValidationError):
    """New password does not meet the password policy"""
    code = "weak_password"

    def __init__(self, message: str, field: str = "password"):
        super().__init__(message, field)


class NotFoundError(AcadoAuthException):
    """Resource not found"""
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")


class AlreadyExistsError(AcadoAuthException):
    """Resource already exists"""
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"

    def __init__(self, resource: str = "Resource", field: Optional[str] = None):
        if field:
            message = f"{resource} with this {field} already exists"
        else:
            message = f"{resource} already exists"
        super().__init__(message)


class StorageUnavailableError(AcadoAuthException):
    """Persistence failed or timed out; outcome unknown, fail closed"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "storage_unavailable"

    def __init__(self, message: str = "Storage is temporarily unavailable"):
        super().__init__(message)
