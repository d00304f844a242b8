"""
Password reset records.
Single-use, time-boxed authorization to set a new password without the
current one.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from acado_auth.core.clock import utcnow


class PasswordResetRecord(SQLModel, table=True):
    """
    At most one unused, unexpired record exists per email.
    A new request supersedes (marks used) every older unused record.
    """
    __tablename__ = "password_reset"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(index=True)  # Normalized email the reset was requested for

    token: str = Field(unique=True, index=True)

    # Status
    used: bool = Field(default=False, index=True)
    used_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    expires_at: datetime = Field(sa_type=DateTime(timezone=True))
