"""
Account repository.
Lookups by id / normalized email / username, profile writes and the
session version ledger.
"""
import logging
import uuid
from typing import Optional, List

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from acado_auth.core.clock import utcnow
from acado_auth.core.exceptions import AlreadyExistsError, StorageUnavailableError
from acado_auth.models.account import Account
from acado_auth.repositories.base import BaseRepository, storage_call

logger = logging.getLogger(__name__)

# Compare-and-swap attempts before an unconditional bump gives up
MAX_VERSION_BUMP_ATTEMPTS = 5


class AccountRepository(BaseRepository[Account]):
    """Repository for Account operations."""

    def __init__(self, session: AsyncSession, timeout: Optional[float] = None):
        super().__init__(Account, session, timeout)

    @storage_call
    async def get_fresh(self, account_id: uuid.UUID) -> Optional[Account]:
        """Get an account, overwriting any cached copy with the stored row."""
        return await self.session.get(Account, account_id, populate_existing=True)

    @storage_call
    async def get_by_email(self, email: str) -> Optional[Account]:
        """Get account by normalized email."""
        query = select(Account).where(Account.email == email)
        result = await self.session.exec(query)
        return result.first()

    @storage_call
    async def get_by_username(self, username: str) -> Optional[Account]:
        """Get account by normalized username."""
        query = select(Account).where(Account.username == username)
        result = await self.session.exec(query)
        return result.first()

    @storage_call
    async def create_account(
        self,
        email: str,
        username: str,
        password_hash: str,
        name: str,
        role: str,
        organization_id: Optional[str] = None,
        organization_name: Optional[str] = None,
        university_ids: Optional[List[str]] = None,
        course_ids: Optional[List[str]] = None
    ) -> Account:
        """Create an active account with session version 0."""
        account = Account(
            email=email,
            username=username,
            password_hash=password_hash,
            name=name,
            role=role,
            organization_id=organization_id,
            organization_name=organization_name,
            university_ids=list(university_ids or []),
            course_ids=list(course_ids or []),
            is_active=True,
            session_version=0
        )
        self.session.add(account)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            # Lost a race against a concurrent registration
            await self.session.rollback()
            raise AlreadyExistsError("User") from exc
        await self.session.refresh(account)
        return account

    @storage_call
    async def update_profile(
        self,
        account: Account,
        name: Optional[str] = None,
        email: Optional[str] = None
    ) -> Account:
        """Update account profile fields."""
        if name is not None:
            account.name = name
        if email is not None:
            account.email = email
        account.updated_at = utcnow()
        self.session.add(account)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise AlreadyExistsError("User", "email") from exc
        await self.session.refresh(account)
        return account

    @storage_call
    async def stage_password(self, account_id: uuid.UUID, password_hash: str) -> bool:
        """
        Stage a credential hash update without committing, so the caller can
        commit it together with the rest of its unit of work.
        """
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(password_hash=password_hash, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.exec(stmt)
        account = await self.session.get(Account, account_id)
        if account is not None:
            set_committed_value(account, "password_hash", password_hash)
        return result.rowcount == 1

    @storage_call
    async def update_password(self, account_id: uuid.UUID, password_hash: str) -> bool:
        """Update account's password hash."""
        updated = await self.stage_password(account_id, password_hash)
        await self.session.commit()
        return updated

    @storage_call
    async def compare_and_bump_version(
        self,
        account_id: uuid.UUID,
        expected: int,
        stamp_login: bool = False
    ) -> Optional[int]:
        """
        Atomically advance session_version from `expected` to `expected + 1`.

        The update is conditional on the stored value, so of two callers
        presenting the same expected version only one matches a row.
        Inactive accounts never match.

        Returns:
            The new version, or None when no row matched
        """
        values = {"session_version": expected + 1}
        if stamp_login:
            values["last_login_at"] = utcnow()

        stmt = (
            update(Account)
            .where(
                Account.id == account_id,
                Account.session_version == expected,
                Account.is_active == True  # noqa: E712
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.exec(stmt)
        await self.session.commit()

        if result.rowcount != 1:
            return None

        new_version = expected + 1
        account = await self.session.get(Account, account_id)
        if account is not None:
            set_committed_value(account, "session_version", new_version)
            if stamp_login:
                set_committed_value(account, "last_login_at", values["last_login_at"])
        return new_version

    @storage_call
    async def bump_version(
        self,
        account_id: uuid.UUID,
        stamp_login: bool = False,
        require_active: bool = True
    ) -> Optional[int]:
        """
        Unconditionally advance session_version by one.

        Implemented as a bounded compare-and-swap loop on the stored value.

        Returns:
            The new version, or None if the account does not exist
            (or is inactive when require_active is set)
        """
        for _ in range(MAX_VERSION_BUMP_ATTEMPTS):
            query = select(Account.session_version, Account.is_active).where(Account.id == account_id)
            row = (await self.session.exec(query)).first()
            if row is None:
                return None
            current, is_active = row
            if require_active and not is_active:
                return None

            where = [Account.id == account_id, Account.session_version == current]
            values = {"session_version": current + 1}
            if stamp_login:
                values["last_login_at"] = utcnow()

            stmt = (
                update(Account)
                .where(*where)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await self.session.exec(stmt)
            await self.session.commit()

            if result.rowcount == 1:
                account = await self.session.get(Account, account_id)
                if account is not None:
                    set_committed_value(account, "session_version", current + 1)
                    if stamp_login:
                        set_committed_value(account, "last_login_at", values["last_login_at"])
                return current + 1

            logger.info(f"Session version contention on account {account_id}, retrying")

        raise StorageUnavailableError("Could not update session version")
