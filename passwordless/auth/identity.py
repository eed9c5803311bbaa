"""
Identity Directory

Thin data access over the identity table, keyed purely by normalized email.
The verifiers only read from it; rows are created by the session manager
once a verified visitor completes their profile.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from passwordless.models.identity import Identity


class IdentityDirectory:
    """Lookup and creation of identities."""

    @staticmethod
    async def find_by_email(db: AsyncSession, email: str) -> Optional[Identity]:
        """Find an identity by normalized email address."""
        stmt = select(Identity).where(Identity.email == email)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def exists(db: AsyncSession, email: str) -> bool:
        stmt = select(Identity.id).where(Identity.email == email).limit(1)
        return (await db.execute(stmt)).first() is not None

    @staticmethod
    async def get(db: AsyncSession, identity_id: UUID) -> Optional[Identity]:
        return await db.get(Identity, identity_id)

    @staticmethod
    async def create(
        db: AsyncSession,
        email: str,
        name: str,
        account_type: Optional[str] = None,
        purpose: Optional[str] = None,
        email_verified: bool = True,
    ) -> Identity:
        """
        Create an identity, or return the existing one for the same email.

        A double-submitted profile form races two inserts; the loser hits the
        unique constraint and resolves to the winner's row.
        """
        identity = Identity(
            email=email,
            name=name,
            account_type=account_type,
            purpose=purpose,
            email_verified=email_verified,
            is_active=True,
        )
        db.add(identity)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            existing = await IdentityDirectory.find_by_email(db, email)
            if existing is None:
                raise
            return existing

        await db.refresh(identity)
        return identity
