"""
Account model.
The auth subsystem's view of a platform user: identity, credential hash,
active flag and the session version counter.
"""
import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import Column, DateTime, JSON
from sqlmodel import SQLModel, Field

from acado_auth.core.clock import utcnow


class AccountRole:
    """Roles carried as an opaque claim in access tokens."""
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    LEARNER = "learner"


class Account(SQLModel, table=True):
    """
    Account with authentication and profile info.
    Organization, university and course ids are opaque references
    owned by other services.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    # Auth
    email: str = Field(unique=True, index=True)  # Lowercased
    username: str = Field(unique=True, index=True)  # Lowercased
    password_hash: str

    # Profile
    name: str
    user_type: str = Field(default="Learner")  # Learner, Faculty, Staff, Admin
    role: str = Field(default=AccountRole.LEARNER, index=True)

    # Scoping (opaque references)
    organization_id: Optional[str] = Field(default=None, index=True)
    organization_name: Optional[str] = None
    university_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    course_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    # Status
    is_active: bool = Field(default=True)

    # Bumped on login, refresh rotation, logout and password change.
    # Refresh tokens carrying any other value are dead.
    session_version: int = Field(default=0)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    last_login_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
