"""
Authentication schemas.
"""
import uuid
from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    """Learner registration request."""
    email: EmailStr
    password: str
    name: str
    username: Optional[str] = None
    organization_id: Optional[str] = None
    organization_name: Optional[str] = None
    university_ids: List[str] = Field(default_factory=list)
    course_ids: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "email": "learner@university.edu",
                "password": "securepassword123",
                "name": "Jane Doe",
                "organization_id": "org-123",
                "university_ids": ["uni-1"]
            }
        }


class LoginRequest(BaseModel):
    """Login request."""
    email: EmailStr
    password: str

    class Config:
        json_schema_extra = {
            "example": {
                "email": "learner@university.edu",
                "password": "securepassword123"
            }
        }


class RefreshRequest(BaseModel):
    """Refresh token request (the cookie takes precedence)."""
    refresh_token: Optional[str] = None


class AccountResponse(BaseModel):
    """Account details. Never includes the credential hash."""
    id: uuid.UUID
    email: str
    username: str
    name: str
    user_type: str
    role: str
    is_active: bool
    organization_id: Optional[str] = None
    organization_name: Optional[str] = None
    university_ids: List[str] = Field(default_factory=list)
    course_ids: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionResponse(BaseModel):
    """Session returned by login, register, refresh and password changes."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    account: AccountResponse


class PasswordChangedResponse(SessionResponse):
    """Session returned after a password change or reset."""
    message: str


class UpdateProfileRequest(BaseModel):
    """Update profile."""
    name: Optional[str] = None
    email: Optional[EmailStr] = None


class ForgotPasswordRequest(BaseModel):
    """Request password reset."""
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Confirm password reset with token."""
    email: EmailStr
    token: str
    new_password: str


class ChangePasswordRequest(BaseModel):
    """Change password for logged-in account."""
    current_password: str
    new_password: str
