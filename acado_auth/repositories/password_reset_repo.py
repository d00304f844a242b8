"""
Password reset record repository.
"""
import uuid
from typing import Optional

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from acado_auth.config import settings
from acado_auth.core.clock import utcnow
from acado_auth.core.security import generate_secure_token
from acado_auth.models.password_reset import PasswordResetRecord
from acado_auth.repositories.base import BaseRepository, storage_call


class PasswordResetRepository(BaseRepository[PasswordResetRecord]):
    """Repository for PasswordResetRecord operations."""

    def __init__(self, session: AsyncSession, timeout: Optional[float] = None):
        super().__init__(PasswordResetRecord, session, timeout)

    @storage_call
    async def supersede_and_create(self, email: str) -> PasswordResetRecord:
        """
        Mark every unused record for the email as used, then create a new one.
        Both writes commit together.
        """
        now = utcnow()
        stmt = (
            update(PasswordResetRecord)
            .where(
                PasswordResetRecord.email == email,
                PasswordResetRecord.used == False  # noqa: E712
            )
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.session.exec(stmt)

        record = PasswordResetRecord(
            email=email,
            token=generate_secure_token(),
            expires_at=now + settings.password_reset_ttl
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return record

    @storage_call
    async def get_valid_record(self, email: str, token: str) -> Optional[PasswordResetRecord]:
        """Get an unused, unexpired record matching email and token."""
        query = select(PasswordResetRecord).where(
            PasswordResetRecord.email == email,
            PasswordResetRecord.token == token,
            PasswordResetRecord.used == False,  # noqa: E712
            PasswordResetRecord.expires_at > utcnow()
        )
        result = await self.session.exec(query)
        return result.first()

    @storage_call
    async def stage_claim(self, record_id: uuid.UUID) -> bool:
        """
        Flip a record from unused to used if it is still unused and unexpired.
        Not committed; returns False if another caller claimed it first.
        """
        now = utcnow()
        stmt = (
            update(PasswordResetRecord)
            .where(
                PasswordResetRecord.id == record_id,
                PasswordResetRecord.used == False,  # noqa: E712
                PasswordResetRecord.expires_at > now
            )
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.exec(stmt)
        return result.rowcount == 1

    @storage_call
    async def stage_supersede_others(self, email: str, keep_id: uuid.UUID) -> int:
        """Mark every other unused record for the email as used. Not committed."""
        stmt = (
            update(PasswordResetRecord)
            .where(
                PasswordResetRecord.email == email,
                PasswordResetRecord.used == False,  # noqa: E712
                PasswordResetRecord.id != keep_id
            )
            .values(used=True, used_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.exec(stmt)
        return result.rowcount
