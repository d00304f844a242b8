import asyncio
import inspect
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path

# Settings are read at import time; configure before importing the app
_test_tmp_dir = tempfile.mkdtemp(prefix="acado_auth_test_")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{Path(_test_tmp_dir) / 'default.db'}")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-for-automation-only-0123456789")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-for-automation-only-9876543210")
os.environ.setdefault("DEV_MODE", "true")
os.environ.setdefault("FRONTEND_URL", "https://portal.example.test")
os.environ.setdefault("SMTP_HOST", "")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402
from sqlmodel.ext.asyncio.session import AsyncSession  # noqa: E402

from acado_auth.core.security import get_password_hash  # noqa: E402
from acado_auth.models import Account, PasswordResetRecord  # noqa: E402,F401
from acado_auth.services.email_service import MockEmailService, set_email_service  # noqa: E402


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "auth.db"
    # Create the schema synchronously so any event loop can use the file
    sync_engine = create_engine(f"sqlite:///{path}")
    SQLModel.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return path


@pytest.fixture
def open_db(db_path):
    """Factory for an async session maker bound to the test database."""

    @asynccontextmanager
    async def _open():
        engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
        try:
            yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        finally:
            await engine.dispose()

    return _open


@pytest.fixture
def mailer():
    service = MockEmailService()
    set_email_service(service)
    yield service
    set_email_service(None)


@pytest.fixture
def make_account():
    """Insert an account directly, bypassing registration."""

    async def _make(session, email="a@x.com", password="CorrectHorse1", **fields):
        account = Account(
            email=email,
            username=fields.pop("username", email),
            password_hash=get_password_hash(password),
            name=fields.pop("name", "Ada Learner"),
            **fields
        )
        session.add(account)
        await session.commit()
        await session.refresh(account)
        return account

    return _make


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None
