"""
Common schemas used across multiple endpoints.
"""
from typing import Optional
from pydantic import BaseModel


class MessageResponse(BaseModel):
    """Simple message response."""
    message: str

    class Config:
        json_schema_extra = {"example": {"message": "Operation successful"}}


class ForgotPasswordResponse(MessageResponse):
    """Forgot-password acknowledgement; identical whether or not the account exists."""
    dev_reset_token: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response."""
    detail: str
    code: str

    class Config:
        json_schema_extra = {"example": {"detail": "Could not validate credentials", "code": "unauthorized"}}


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str = "1.0.0"
