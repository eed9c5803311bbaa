"""
Magic Link Models

A magic link carries a 64-character random token for one email address.
Rows are keyed by email rather than identity because the first link for an
address is sent before any identity exists. Redeemed rows keep is_used set
and stay behind as an audit trail; only unredeemed expired rows are swept.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlmodel import SQLModel

from passwordless.models.identity import Base


class MagicLink(Base):
    """Single-use sign-in link."""

    __tablename__ = "magic_link"
    __table_args__ = (
        Index("ix_magic_link_email_created_at", "email", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Where the link was requested from; audit only, never checked on redeem.
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)


class MagicLinkRequest(SQLModel):
    email: str


class MagicLinkResponse(SQLModel):
    """Response schema for magic link creation; `link` is only echoed in development."""
    message: str
    expires_in_minutes: int = 15
    link: Optional[str] = None


class MagicLinkVerifyRequest(SQLModel):
    token: str
    email: str
