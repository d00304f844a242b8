"""Tests for the password reset lifecycle."""

import asyncio
from datetime import timedelta
from urllib.parse import urlparse, parse_qs

import pytest
from fastapi import BackgroundTasks
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from acado_auth.core.clock import utcnow
from acado_auth.core.exceptions import (
    InvalidOrExpiredTokenError,
    StorageUnavailableError,
    UnauthorizedError,
    WeakPasswordError,
)
from acado_auth.models.account import Account
from acado_auth.models.password_reset import PasswordResetRecord
from acado_auth.services.auth_service import AuthService
from acado_auth.services.email_service import EmailService


async def _records(sessions, email="a@x.com"):
    async with sessions() as session:
        result = await session.exec(
            select(PasswordResetRecord)
            .where(PasswordResetRecord.email == email)
            .order_by(PasswordResetRecord.created_at)
        )
        return list(result.all())


class TestRequestReset:

    async def test_creates_record_and_notifies(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                token = await AuthService(session).forgot_password(" A@x.com ")

            records = await _records(sessions)
            assert len(records) == 1
            record = records[0]
            assert record.token == token
            assert record.used is False
            assert timedelta(minutes=59) < record.expires_at - record.created_at <= timedelta(minutes=61)

            assert len(mailer.sent_emails) == 1
            sent = mailer.get_last_email()
            assert sent["to"] == "a@x.com"
            assert "Ada Learner" in sent["body"]

    async def test_reset_link_carries_token_and_email(self, open_db, make_account, monkeypatch):
        calls = []

        class RecordingMailer(EmailService):
            async def send_email(self, to, subject, body, html=None):
                return True

            async def send_templated_email(self, template, to, data):
                calls.append((template, to, data))
                return True

        monkeypatch.setattr("acado_auth.services.auth_service.get_email_service", RecordingMailer)
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                token = await AuthService(session).forgot_password("a@x.com")

        template, to, data = calls[0]
        assert template == "forgot_password"
        assert to == "a@x.com"
        assert data["expiresInMinutes"] == 60
        link = urlparse(data["resetLink"])
        assert link.netloc == "portal.example.test"
        assert link.path == "/reset-password"
        assert parse_qs(link.query) == {"token": [token], "email": ["a@x.com"]}

    async def test_unknown_email_has_no_side_effects(self, open_db, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                assert await AuthService(session).forgot_password("a@x.com") is None

            assert await _records(sessions) == []
            assert len(mailer.sent_emails) == 0

    async def test_inactive_account_has_no_side_effects(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session, is_active=False)
                assert await AuthService(session).forgot_password("a@x.com") is None

            assert await _records(sessions) == []
            assert mailer.sent_emails == []

    async def test_new_request_supersedes_old(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                service = AuthService(session)
                await service.forgot_password("a@x.com")
                await service.forgot_password("a@x.com")

            records = await _records(sessions)
            assert [r.used for r in records] == [True, False]
            assert records[0].used_at is not None

    async def test_notifier_failure_is_swallowed(self, open_db, make_account, monkeypatch):
        class BrokenMailer(EmailService):
            async def send_email(self, to, subject, body, html=None):
                raise ConnectionError("smtp down")

        monkeypatch.setattr("acado_auth.services.auth_service.get_email_service", BrokenMailer)
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                token = await AuthService(session).forgot_password("a@x.com")

            assert token is not None
            records = await _records(sessions)
            assert len(records) == 1
            assert records[0].used is False

    async def test_delivery_does_not_block_the_request(self, open_db, make_account, monkeypatch):
        released = asyncio.Event()
        sent = []

        class StalledMailer(EmailService):
            async def send_email(self, to, subject, body, html=None):
                await released.wait()
                sent.append(body)
                return True

        monkeypatch.setattr("acado_auth.services.auth_service.get_email_service", StalledMailer)
        tasks = BackgroundTasks()
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                token = await asyncio.wait_for(
                    AuthService(session).forgot_password("a@x.com", tasks), timeout=5
                )

            assert sent == []
            assert len(tasks.tasks) == 1

        # The task only needs plain values, so it runs after the session is gone
        released.set()
        await tasks()
        assert len(sent) == 1
        assert token in sent[0]


class TestConsumeReset:

    async def test_reset_sets_password_and_is_single_use(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                service = AuthService(session)
                token = await service.forgot_password("a@x.com")

                await service.reset_password("a@x.com", token, "BatteryStaple2")
                await service.login("a@x.com", "BatteryStaple2")

                with pytest.raises(InvalidOrExpiredTokenError):
                    await service.reset_password("a@x.com", token, "AnotherOne3")

            records = await _records(sessions)
            assert records[0].used is True
            assert records[0].used_at is not None

    async def test_supersession_first_fails_second_succeeds(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                service = AuthService(session)
                first = await service.forgot_password("a@x.com")
                second = await service.forgot_password("a@x.com")

                with pytest.raises(InvalidOrExpiredTokenError):
                    await service.reset_password("a@x.com", first, "BatteryStaple2")

                await service.reset_password("a@x.com", second, "BatteryStaple2")

    async def test_expired_record_rejected(self, open_db, make_account):
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                session.add(PasswordResetRecord(
                    email="a@x.com",
                    token="expired-token",
                    expires_at=utcnow() - timedelta(seconds=1),
                ))
                await session.commit()

                with pytest.raises(InvalidOrExpiredTokenError):
                    await AuthService(session).reset_password("a@x.com", "expired-token", "BatteryStaple2")

            records = await _records(sessions)
            assert records[0].used is False

    async def test_token_bound_to_email(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                await make_account(session, email="b@x.com")
                service = AuthService(session)
                token = await service.forgot_password("a@x.com")

                with pytest.raises(InvalidOrExpiredTokenError):
                    await service.reset_password("b@x.com", token, "BatteryStaple2")

    async def test_weak_password_does_not_consume(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                service = AuthService(session)
                token = await service.forgot_password("a@x.com")

                with pytest.raises(WeakPasswordError) as exc_info:
                    await service.reset_password("a@x.com", token, "short")
                assert exc_info.value.field == "new_password"

                await service.reset_password("a@x.com", token, "BatteryStaple2")

    async def test_consume_marks_other_unused_records(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                service = AuthService(session)
                token = await service.forgot_password("a@x.com")
                # A stray unused record, e.g. created by a concurrent request
                session.add(PasswordResetRecord(
                    email="a@x.com",
                    token="stray-token",
                    expires_at=utcnow() + timedelta(minutes=30),
                ))
                await session.commit()

                await service.reset_password("a@x.com", token, "BatteryStaple2")

            records = await _records(sessions)
            assert all(r.used for r in records)

    async def test_claim_race_leaves_password_untouched(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                account = await make_account(session)
                account_id, original_hash = account.id, account.password_hash
                service = AuthService(session)
                token = await service.forgot_password("a@x.com")

                # Another request consumes the record between lookup and claim
                async def lost_claim(record_id):
                    return False

                service.password_reset.reset_repo.stage_claim = lost_claim
                with pytest.raises(InvalidOrExpiredTokenError):
                    await service.reset_password("a@x.com", token, "BatteryStaple2")

            async with sessions() as session:
                stored = await session.get(Account, account_id)
                assert stored.password_hash == original_hash
                assert stored.session_version == 0

    async def test_reset_issues_session_and_kills_old_ones(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                await make_account(session)
                service = AuthService(session)
                old = await service.login("a@x.com", "CorrectHorse1")
                token = await service.forgot_password("a@x.com")

                issued = await service.reset_password("a@x.com", token, "BatteryStaple2")

                with pytest.raises(UnauthorizedError):
                    await service.refresh(old.refresh_token)
                await service.refresh(issued.refresh_token)


class TestConsumeStorageFailures:

    async def _assert_nothing_consumed(self, sessions, account_id, original_hash):
        records = await _records(sessions)
        assert [r.used for r in records] == [False]
        async with sessions() as session:
            stored = await session.get(Account, account_id)
            assert stored.password_hash == original_hash
            assert stored.session_version == 0

    async def test_driver_error_on_commit_fails_closed(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                account = await make_account(session)
                account_id, original_hash = account.id, account.password_hash
                service = AuthService(session)
                token = await service.forgot_password("a@x.com")

                async def broken_commit():
                    raise OperationalError("COMMIT", {}, Exception("database is down"))

                session.commit = broken_commit
                with pytest.raises(StorageUnavailableError):
                    await service.reset_password("a@x.com", token, "BatteryStaple2")

            await self._assert_nothing_consumed(sessions, account_id, original_hash)

    async def test_commit_timeout_fails_closed(self, open_db, make_account, mailer):
        async with open_db() as sessions:
            async with sessions() as session:
                account = await make_account(session)
                account_id, original_hash = account.id, account.password_hash
                token = await AuthService(session).forgot_password("a@x.com")

                service = AuthService(session, storage_timeout=0.5)

                async def slow_commit():
                    await asyncio.sleep(5)

                session.commit = slow_commit
                with pytest.raises(StorageUnavailableError):
                    await service.reset_password("a@x.com", token, "BatteryStaple2")

            await self._assert_nothing_consumed(sessions, account_id, original_hash)
