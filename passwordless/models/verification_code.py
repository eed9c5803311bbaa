"""
One-Time Email Code Models

Six-digit codes are mailed to an address and typed back by the visitor.
Several unused rows may exist for one email (resends). Each stays
redeemable until it expires; verification consumes the newest unused row
carrying the submitted code, and rows are flagged rather than deleted once
consumed. Expired rows are removed by a best-effort sweep.
"""

import enum
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlmodel import SQLModel

from passwordless.core.clock import as_utc
from passwordless.models.identity import Base


class CodePurpose(str, enum.Enum):
    """Why the code was requested; recorded for audit, not enforced."""
    login = "login"
    signup = "signup"


class VerificationCode(Base):
    """Single-use numeric code sent by email."""

    __tablename__ = "verification_code"
    __table_args__ = (
        Index("ix_verification_code_email_created_at", "email", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)

    email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        comment="Normalized email the code was sent to",
    )

    code: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="ASCII digits, leading zeros preserved",
    )

    purpose: Mapped[CodePurpose] = mapped_column(
        Enum(CodePurpose, name="code_purpose_enum"),
        default=CodePurpose.login,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    used: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) > as_utc(self.expires_at)


class CodeRequest(SQLModel):
    """Request schema for mailing a verification code."""
    email: str
    purpose: CodePurpose = CodePurpose.login


class CodeRequestResponse(SQLModel):
    """Response schema for code issuance."""
    message: str
    expires_in_minutes: int = 10
    dev_code: Optional[str] = None


class CodeVerifyRequest(SQLModel):
    """Request schema for submitting a verification code."""
    email: str
    code: str
