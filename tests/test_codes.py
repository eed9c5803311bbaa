"""Tests for one-time code issuance and verification."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from passwordless.auth import codes as codes_module
from passwordless.auth.identity import IdentityDirectory
from passwordless.auth.results import AuthFailure, FailureKind, Issued, Verified
from passwordless.auth.store import CredentialStore
from passwordless.core.clock import utc_now
from passwordless.models import LoginAttempt
from passwordless.models.verification_code import CodePurpose
from tests.conftest import age_codes, seconds_from_now, set_code_expiry, stored_codes

EMAIL = "new@example.com"


@pytest.fixture
def fixed_codes(monkeypatch):
    """Make generate_code hand out a known sequence."""
    def install(*values):
        sequence = iter(values)
        monkeypatch.setattr(codes_module, "generate_code", lambda length=6: next(sequence))
    return install


class TestIssue:
    async def test_stores_and_sends_code(self, db_session, session_factory, code_service, mailer):
        outcome = await code_service.issue(db_session, "  New@Example.com ")

        assert isinstance(outcome, Issued)
        assert outcome.email == EMAIL
        assert mailer.codes == [(EMAIL, outcome.code)]

        rows = await stored_codes(session_factory, EMAIL)
        assert len(rows) == 1
        assert rows[0].code == outcome.code
        assert not rows[0].used
        assert rows[0].purpose is CodePurpose.login
        lifetime = rows[0].expires_at - rows[0].created_at
        assert lifetime == timedelta(minutes=10)
        assert not rows[0].is_expired

    async def test_rejects_invalid_email(self, db_session, code_service, mailer):
        outcome = await code_service.issue(db_session, "not-an-email")

        assert isinstance(outcome, AuthFailure)
        assert outcome.kind is FailureKind.VALIDATION
        assert mailer.codes == []

    async def test_resend_within_cooldown_is_refused(self, db_session, code_service, mailer):
        await code_service.issue(db_session, EMAIL)

        outcome = await code_service.issue(db_session, EMAIL)

        assert isinstance(outcome, AuthFailure)
        assert outcome.kind is FailureKind.RATE_LIMITED
        assert outcome.cooldown_minutes == 1
        assert "1 minute " in outcome.message
        assert len(mailer.codes) == 1

    async def test_delivery_failure_removes_code(
        self, db_session, session_factory, code_service, mailer
    ):
        mailer.fail = True

        outcome = await code_service.issue(db_session, EMAIL)

        assert isinstance(outcome, AuthFailure)
        assert outcome.kind is FailureKind.DELIVERY_FAILURE
        assert outcome.restart_flow
        assert await stored_codes(session_factory, EMAIL) == []

    async def test_failed_delivery_does_not_start_cooldown(self, db_session, code_service, mailer):
        mailer.fail = True
        await code_service.issue(db_session, EMAIL)
        mailer.fail = False

        outcome = await code_service.issue(db_session, EMAIL)

        assert isinstance(outcome, Issued)


class TestVerify:
    async def test_new_email_is_routed_to_profile(self, db_session, code_service, mailer):
        await code_service.issue(db_session, EMAIL)

        outcome = await code_service.verify(db_session, EMAIL, mailer.last_code)

        assert outcome == Verified(email=EMAIL, is_new_identity=True, identity_id=None)

    async def test_existing_email_is_routed_to_session(
        self, db_session, code_service, mailer, existing_identity
    ):
        await code_service.issue(db_session, existing_identity.email)

        outcome = await code_service.verify(db_session, existing_identity.email, mailer.last_code)

        assert isinstance(outcome, Verified)
        assert not outcome.is_new_identity
        assert outcome.identity_id == existing_identity.id

    async def test_code_is_single_use(self, db_session, session_factory, code_service, mailer):
        await code_service.issue(db_session, EMAIL)
        code = mailer.last_code

        first = await code_service.verify(db_session, EMAIL, code)
        second = await code_service.verify(db_session, EMAIL, code)

        assert isinstance(first, Verified)
        assert isinstance(second, AuthFailure)
        assert second.kind is FailureKind.INVALID_OR_EXPIRED
        rows = await stored_codes(session_factory, EMAIL)
        assert rows[0].used
        assert rows[0].used_at is not None

    async def test_email_and_code_are_normalized(self, db_session, code_service, mailer):
        await code_service.issue(db_session, EMAIL)

        outcome = await code_service.verify(db_session, " NEW@example.COM", f" {mailer.last_code} ")

        assert isinstance(outcome, Verified)

    async def test_wrong_code(self, db_session, code_service, fixed_codes):
        fixed_codes("111111")
        await code_service.issue(db_session, EMAIL)

        outcome = await code_service.verify(db_session, EMAIL, "222222")

        assert isinstance(outcome, AuthFailure)
        assert outcome.kind is FailureKind.INVALID_OR_EXPIRED
        assert not outcome.restart_flow
        assert outcome.remaining_attempts == 4

    async def test_malformed_code_is_a_validation_error(self, db_session, code_service):
        outcome = await code_service.verify(db_session, EMAIL, "12ab56")

        assert isinstance(outcome, AuthFailure)
        assert outcome.kind is FailureKind.VALIDATION

    async def test_code_for_another_address_is_rejected(self, db_session, code_service, mailer):
        await code_service.issue(db_session, EMAIL)

        outcome = await code_service.verify(db_session, "other@example.com", mailer.last_code)

        assert isinstance(outcome, AuthFailure)
        assert outcome.kind is FailureKind.INVALID_OR_EXPIRED

    async def test_accepted_just_before_expiry(self, db_session, code_service, mailer):
        await code_service.issue(db_session, EMAIL)
        await set_code_expiry(db_session, EMAIL, seconds_from_now(1))

        outcome = await code_service.verify(db_session, EMAIL, mailer.last_code)

        assert isinstance(outcome, Verified)

    async def test_rejected_just_after_expiry(self, db_session, code_service, mailer):
        await code_service.issue(db_session, EMAIL)
        await set_code_expiry(db_session, EMAIL, seconds_from_now(-1))

        outcome = await code_service.verify(db_session, EMAIL, mailer.last_code)

        assert isinstance(outcome, AuthFailure)
        assert outcome.kind is FailureKind.INVALID_OR_EXPIRED

    async def test_expired_codes_are_swept_on_verify(
        self, db_session, session_factory, code_service, mailer
    ):
        await code_service.issue(db_session, EMAIL)
        await set_code_expiry(db_session, EMAIL, seconds_from_now(-60))

        await code_service.verify(db_session, EMAIL, mailer.last_code)

        assert await stored_codes(session_factory, EMAIL) == []

    async def test_older_code_still_verifies_after_resend(
        self, db_session, session_factory, code_service, fixed_codes
    ):
        fixed_codes("111111", "222222")
        await code_service.issue(db_session, EMAIL)
        await age_codes(db_session, EMAIL, timedelta(minutes=2))
        await code_service.issue(db_session, EMAIL)

        older = await code_service.verify(db_session, EMAIL, "111111")

        assert isinstance(older, Verified)
        rows = await stored_codes(session_factory, EMAIL)
        assert [(row.code, row.used) for row in rows] == [("111111", True), ("222222", False)]
        assert await code_service.limiter.failed_attempts(db_session, EMAIL) == 0

    async def test_repeated_value_consumes_newest_row_first(
        self, db_session, session_factory, code_service, fixed_codes
    ):
        fixed_codes("333333", "333333")
        await code_service.issue(db_session, EMAIL)
        await age_codes(db_session, EMAIL, timedelta(minutes=2))
        await code_service.issue(db_session, EMAIL)

        first = await code_service.verify(db_session, EMAIL, "333333")

        assert isinstance(first, Verified)
        older, newer = await stored_codes(session_factory, EMAIL)
        assert not older.used
        assert newer.used

        second = await code_service.verify(db_session, EMAIL, "333333")

        assert isinstance(second, Verified)
        assert all(row.used for row in await stored_codes(session_factory, EMAIL))

    async def test_concurrent_verifications_succeed_exactly_once(
        self, db_session, session_factory, code_service, mailer
    ):
        await code_service.issue(db_session, EMAIL)
        code = mailer.last_code

        async def attempt():
            async with session_factory() as db:
                return await code_service.verify(db, EMAIL, code)

        results = await asyncio.gather(attempt(), attempt())

        successes = [r for r in results if isinstance(r, Verified)]
        failures = [r for r in results if isinstance(r, AuthFailure)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert failures[0].kind is FailureKind.INVALID_OR_EXPIRED


class TestLockout:
    async def test_locked_after_five_failures(self, db_session, code_service, fixed_codes):
        fixed_codes("111111")
        await code_service.issue(db_session, EMAIL)

        for _ in range(5):
            outcome = await code_service.verify(db_session, EMAIL, "999999")
            assert outcome.kind is FailureKind.INVALID_OR_EXPIRED

        outcome = await code_service.verify(db_session, EMAIL, "111111")

        assert isinstance(outcome, AuthFailure)
        assert outcome.kind is FailureKind.LOCKED
        assert outcome.cooldown_minutes == 15

    async def test_lockout_does_not_consume_the_code(
        self, db_session, session_factory, code_service, fixed_codes, monkeypatch
    ):
        fixed_codes("111111")
        await code_service.issue(db_session, EMAIL)
        for _ in range(5):
            await code_service.verify(db_session, EMAIL, "999999")

        consume = AsyncMock()
        monkeypatch.setattr(CredentialStore, "consume_code", consume)
        await code_service.verify(db_session, EMAIL, "111111")

        consume.assert_not_awaited()
        rows = await stored_codes(session_factory, EMAIL)
        assert not rows[0].used

    async def test_lockout_is_per_address(self, db_session, code_service, mailer):
        for _ in range(5):
            await code_service.verify(db_session, "victim@example.com", "999999")

        await code_service.issue(db_session, EMAIL)
        outcome = await code_service.verify(db_session, EMAIL, mailer.last_code)

        assert isinstance(outcome, Verified)


class TestStore:
    async def test_consume_is_atomic_across_sessions(self, db_session, session_factory):
        await CredentialStore.add_code(
            db_session, EMAIL, "424242", CodePurpose.login, timedelta(minutes=10)
        )

        async def consume():
            async with session_factory() as db:
                return await CredentialStore.consume_code(db, EMAIL, "424242")

        results = await asyncio.gather(*(consume() for _ in range(4)))

        assert sum(1 for r in results if r is not None) == 1

    async def test_identity_created_later_is_found(self, db_session, code_service, mailer):
        await code_service.issue(db_session, EMAIL)
        await IdentityDirectory.create(db_session, email=EMAIL, name="Late Comer")

        outcome = await code_service.verify(db_session, EMAIL, mailer.last_code)

        assert not outcome.is_new_identity


class TestHousekeeping:
    async def test_verify_purges_attempts_past_retention(self, db_session, code_service, mailer):
        db_session.add(LoginAttempt(
            email="old@example.com", success=False, created_at=utc_now() - timedelta(hours=25)
        ))
        db_session.add(LoginAttempt(
            email="old@example.com", success=False, created_at=utc_now() - timedelta(hours=1)
        ))
        await db_session.commit()
        await code_service.issue(db_session, EMAIL)

        await code_service.verify(db_session, EMAIL, mailer.last_code)

        kept = await CredentialStore.count_failed_attempts_since(
            db_session, "old@example.com", utc_now() - timedelta(days=2)
        )
        assert kept == 1
