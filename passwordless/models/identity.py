"""
Identity Data Models and Database Schema

This module defines the identity (user account) record together with the
declarative base shared by every table in the service. Identities are keyed
by normalized email and are only ever created once a visitor has proven
control of their address and completed the profile step.

The design separates database concerns (Identity table) from API concerns
(IdentityRead, ProfileRequest schemas) following clean architecture principles.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlmodel import SQLModel


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all database models."""
    pass


class Identity(Base):
    """Registered account, unique per normalized email address."""

    __tablename__ = "identity"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)

    email: Mapped[str] = mapped_column(
        String(320),
        unique=True,
        index=True,
        nullable=False,
        comment="Normalized (trimmed, lower-cased) email address",
    )

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Display name captured during profile completion",
    )

    account_type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="individual or organization",
    )

    purpose: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Free-form reason given at signup",
    )

    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Whether control of the email address has been proven",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Deactivated identities cannot hold sessions",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class IdentityRead(SQLModel):
    """Identity data schema for API responses."""
    id: UUID
    email: str
    name: str
    account_type: Optional[str] = None
    email_verified: bool

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityRead":
        return cls(
            id=identity.id,
            email=identity.email,
            name=identity.name,
            account_type=identity.account_type,
            email_verified=identity.email_verified,
        )


class ProfileRequest(SQLModel):
    """Profile completion request for a freshly verified email."""
    email: str
    name: str
    signup_token: str
    account_type: Optional[str] = None
    purpose: Optional[str] = None


class EmailExistsResponse(SQLModel):
    """Response schema for the email existence probe."""
    exists: bool
