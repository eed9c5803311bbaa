"""
Credential Store

Persistence for one-time codes, magic-link tokens and login attempts. All
three tables are keyed by normalized email with a time index, because the
rows have to exist before any identity does.

The only write that needs mutual exclusion is the used-flag transition, and
it is always a single conditional UPDATE ... RETURNING so two concurrent
verifications of the same credential can never both succeed. Everything else
is insert, count, or best-effort delete.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from passwordless.core.clock import as_utc, utc_now
from passwordless.models.login_attempt import LoginAttempt
from passwordless.models.magic_link import MagicLink
from passwordless.models.verification_code import CodePurpose, VerificationCode


class CredentialStore:
    """Data access for credential and attempt rows."""

    # Verification codes

    @staticmethod
    async def add_code(
        db: AsyncSession,
        email: str,
        code: str,
        purpose: CodePurpose,
        expires_in: timedelta,
    ) -> VerificationCode:
        now = utc_now()
        row = VerificationCode(
            email=email,
            code=code,
            purpose=purpose,
            created_at=now,
            expires_at=now + expires_in,
            used=False,
        )
        db.add(row)
        await db.commit()
        await db.refresh(row)
        return row

    @staticmethod
    async def delete_code(db: AsyncSession, row: VerificationCode) -> None:
        await db.delete(row)
        await db.commit()

    @staticmethod
    async def consume_code(
        db: AsyncSession,
        email: str,
        code: str,
        now: Optional[datetime] = None,
    ) -> Optional[VerificationCode]:
        """
        Atomically mark the newest unused row matching `email` and `code` as used.

        Issuing a newer code does not retire an older one: each stays
        redeemable until it expires or is used. Returns the consumed row, or
        None when no unused row matches, the match has expired, or another
        request consumed it first.
        """
        now = now or utc_now()
        # Aliased so the subquery is not correlated to the UPDATE target.
        candidate = aliased(VerificationCode)
        newest = (
            select(candidate.id)
            .where(
                candidate.email == email,
                candidate.code == code,
                candidate.used.is_(False),
            )
            .order_by(candidate.created_at.desc())
            .limit(1)
            .scalar_subquery()
        )
        stmt = (
            update(VerificationCode)
            .where(
                VerificationCode.id == newest,
                VerificationCode.used.is_(False),
                VerificationCode.expires_at >= now,
            )
            .values(used=True, used_at=now)
            .returning(VerificationCode)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row = result.scalar_one_or_none()
        await db.commit()
        return row

    @staticmethod
    async def delete_expired_codes(db: AsyncSession) -> int:
        stmt = delete(VerificationCode).where(VerificationCode.expires_at < utc_now())
        result = await db.execute(stmt)
        await db.commit()
        return result.rowcount

    @staticmethod
    async def count_codes_since(db: AsyncSession, email: str, since: datetime) -> int:
        stmt = select(func.count(VerificationCode.id)).where(
            VerificationCode.email == email,
            VerificationCode.created_at >= since,
        )
        return (await db.execute(stmt)).scalar_one()

    @staticmethod
    async def last_code_issued_at(db: AsyncSession, email: str) -> Optional[datetime]:
        stmt = select(func.max(VerificationCode.created_at)).where(
            VerificationCode.email == email
        )
        value = (await db.execute(stmt)).scalar_one_or_none()
        return as_utc(value) if value is not None else None

    # Magic links

    @staticmethod
    async def add_magic_link(
        db: AsyncSession,
        email: str,
        token: str,
        expires_in: timedelta,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> MagicLink:
        now = utc_now()
        row = MagicLink(
            email=email,
            token=token,
            created_at=now,
            expires_at=now + expires_in,
            ip_address=ip_address,
            user_agent=user_agent,
            is_used=False,
        )
        db.add(row)
        await db.commit()
        await db.refresh(row)
        return row

    @staticmethod
    async def delete_magic_link(db: AsyncSession, row: MagicLink) -> None:
        await db.delete(row)
        await db.commit()

    @staticmethod
    async def consume_magic_link(
        db: AsyncSession,
        token: str,
        email: str,
        now: Optional[datetime] = None,
    ) -> Optional[MagicLink]:
        """Atomically redeem the unused, unexpired link matching (token, email)."""
        now = now or utc_now()
        stmt = (
            update(MagicLink)
            .where(
                MagicLink.token == token,
                MagicLink.email == email,
                MagicLink.is_used.is_(False),
                MagicLink.expires_at >= now,
            )
            .values(is_used=True, used_at=now)
            .returning(MagicLink)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row = result.scalar_one_or_none()
        await db.commit()
        return row

    @staticmethod
    async def delete_expired_links(db: AsyncSession) -> int:
        """Delete expired links that were never redeemed; redeemed rows stay for audit."""
        stmt = delete(MagicLink).where(
            MagicLink.expires_at < utc_now(),
            MagicLink.is_used.is_(False),
        )
        result = await db.execute(stmt)
        await db.commit()
        return result.rowcount

    @staticmethod
    async def count_links_since(db: AsyncSession, email: str, since: datetime) -> int:
        stmt = select(func.count(MagicLink.id)).where(
            MagicLink.email == email,
            MagicLink.created_at >= since,
        )
        return (await db.execute(stmt)).scalar_one()

    @staticmethod
    async def last_link_issued_at(db: AsyncSession, email: str) -> Optional[datetime]:
        stmt = select(func.max(MagicLink.created_at)).where(MagicLink.email == email)
        value = (await db.execute(stmt)).scalar_one_or_none()
        return as_utc(value) if value is not None else None

    # Login attempts

    @staticmethod
    async def add_attempt(
        db: AsyncSession,
        email: str,
        success: bool,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginAttempt:
        row = LoginAttempt(
            email=email,
            success=success,
            ip_address=ip_address[:45] if ip_address else None,
            user_agent=user_agent[:500] if user_agent else None,
            created_at=utc_now(),
        )
        db.add(row)
        await db.commit()
        return row

    @staticmethod
    async def count_failed_attempts_since(db: AsyncSession, email: str, since: datetime) -> int:
        stmt = select(func.count(LoginAttempt.id)).where(
            LoginAttempt.email == email,
            LoginAttempt.success.is_(False),
            LoginAttempt.created_at >= since,
        )
        return (await db.execute(stmt)).scalar_one()

    @staticmethod
    async def purge_login_attempts(db: AsyncSession, older_than: datetime) -> int:
        stmt = delete(LoginAttempt).where(LoginAttempt.created_at < older_than)
        result = await db.execute(stmt)
        await db.commit()
        return result.rowcount
