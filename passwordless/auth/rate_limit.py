"""
Issuance Rate Limiting and Verification Lockout

Pure policy over credential-store history. Issuance is gated by hard
ceilings (hourly, and daily for codes) and by a short soft cooldown between
consecutive sends; verification is gated by a lockout after repeated
failures.

All checks are plain reads against time-windowed history. No locks are
taken, so two concurrent requests may both pass a ceiling and produce one
issuance beyond it; ceilings are an abuse deterrent, not a hard cap.
"""

import enum
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from passwordless.auth.store import CredentialStore
from passwordless.core.clock import utc_now
from passwordless.core.config import AuthPolicy

logger = logging.getLogger(__name__)


class CredentialKind(str, enum.Enum):
    code = "code"
    magic_link = "magic_link"


@dataclass(frozen=True)
class IssueDecision:
    allowed: bool
    cooldown_minutes: Optional[int] = None


def remaining_cooldown_minutes(cooldown: timedelta, elapsed: timedelta) -> int:
    """
    Whole minutes left before another issuance, rounded up.

    A client that is still blocked is never told zero minutes.
    """
    remaining = (cooldown - elapsed).total_seconds()
    return max(1, math.ceil(remaining / 60))


class RateLimiter:
    """Issuance and lockout policy for one AuthPolicy."""

    def __init__(self, policy: AuthPolicy):
        self.policy = policy

    async def can_issue(
        self,
        db: AsyncSession,
        email: str,
        kind: CredentialKind,
        now: Optional[datetime] = None,
    ) -> IssueDecision:
        now = now or utc_now()
        if kind is CredentialKind.code:
            decision = await self._check_codes(db, email, now)
        else:
            decision = await self._check_links(db, email, now)

        if not decision.allowed:
            logger.info(
                "Issuance of %s to %s refused, cooldown %s min",
                kind.value, email, decision.cooldown_minutes
            )
        return decision

    async def _check_codes(self, db: AsyncSession, email: str, now: datetime) -> IssueDecision:
        policy = self.policy

        hourly = await CredentialStore.count_codes_since(db, email, now - timedelta(hours=1))
        if hourly >= policy.code_hourly_limit:
            return IssueDecision(False, policy.ceiling_backoff_minutes)

        daily = await CredentialStore.count_codes_since(db, email, now - timedelta(hours=24))
        if daily >= policy.code_daily_limit:
            return IssueDecision(False, policy.daily_backoff_minutes)

        last = await CredentialStore.last_code_issued_at(db, email)
        return self._cooldown_decision(last, policy.code_cooldown, now)

    async def _check_links(self, db: AsyncSession, email: str, now: datetime) -> IssueDecision:
        policy = self.policy

        hourly = await CredentialStore.count_links_since(db, email, now - timedelta(hours=1))
        if hourly >= policy.link_hourly_limit:
            return IssueDecision(False, policy.ceiling_backoff_minutes)

        last = await CredentialStore.last_link_issued_at(db, email)
        return self._cooldown_decision(last, policy.link_cooldown, now)

    @staticmethod
    def _cooldown_decision(
        last_issued_at: Optional[datetime],
        cooldown: timedelta,
        now: datetime,
    ) -> IssueDecision:
        if last_issued_at is None:
            return IssueDecision(True)
        elapsed = now - last_issued_at
        if elapsed < cooldown:
            return IssueDecision(False, remaining_cooldown_minutes(cooldown, elapsed))
        return IssueDecision(True)

    # Lockout

    async def failed_attempts(
        self,
        db: AsyncSession,
        email: str,
        now: Optional[datetime] = None,
    ) -> int:
        since = (now or utc_now()) - self.policy.lockout_window
        return await CredentialStore.count_failed_attempts_since(db, email, since)

    async def is_locked(self, db: AsyncSession, email: str, now: Optional[datetime] = None) -> bool:
        return await self.failed_attempts(db, email, now) >= self.policy.lockout_threshold

    async def remaining_attempts(
        self,
        db: AsyncSession,
        email: str,
        now: Optional[datetime] = None,
    ) -> int:
        failures = await self.failed_attempts(db, email, now)
        return max(0, self.policy.lockout_threshold - failures)

    @property
    def lockout_minutes(self) -> int:
        return math.ceil(self.policy.lockout_window.total_seconds() / 60)

    @staticmethod
    async def record_attempt(
        db: AsyncSession,
        email: str,
        success: bool,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        await CredentialStore.add_attempt(db, email, success, ip_address, user_agent)

    async def purge_stale_attempts(self, db: AsyncSession, now: Optional[datetime] = None) -> int:
        """
        Delete login attempts older than the retention window.

        Runs on the verification path; a failure is logged and ignored.
        """
        cutoff = (now or utc_now()) - self.policy.attempt_retention
        try:
            deleted = await CredentialStore.purge_login_attempts(db, cutoff)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning("Login attempt purge failed: %s", e)
            return 0
        if deleted:
            logger.debug("Purged %d login attempts older than %s", deleted, cutoff)
        return deleted
