"""
Session Models

Sessions are stateless: the server signs a token carrying the identity id,
email and a fixed expiry, and the client holds it exclusively. There is no
session table and no server-side revocation list; a token remains valid
until its natural expiry.

This module defines the in-process representation of an issued session and
the schemas used to describe it in API responses.
"""

import enum
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlmodel import SQLModel

from passwordless.models.identity import Identity, IdentityRead


class SessionToken(SQLModel):
    """A freshly issued session credential."""
    token: str
    identity_id: UUID
    email: str
    issued_at: datetime
    expires_at: datetime


class SessionStatus(str, enum.Enum):
    """Outcome of validating a presented session token."""
    valid = "valid"
    expired = "expired"
    invalid = "invalid"


class SessionValidation:
    """Result of SessionService.validate_session."""

    __slots__ = ("status", "identity", "expires_at")

    def __init__(
        self,
        status: SessionStatus,
        identity: Optional[Identity] = None,
        expires_at: Optional[datetime] = None,
    ):
        self.status = status
        self.identity = identity
        self.expires_at = expires_at

    @property
    def is_valid(self) -> bool:
        return self.status is SessionStatus.valid


class SessionInfo(SQLModel):
    """Schema for session information in responses."""
    issued_at: Optional[datetime] = None
    expires_at: datetime


class AuthenticatedResponse(SQLModel):
    """Response returned once a session has been issued."""
    message: str
    identity: IdentityRead
    session: SessionInfo


class VerificationResponse(SQLModel):
    """
    Response for a successful code or magic link verification.

    Returning identities receive a session immediately; new identities
    receive a short-lived signup token to present to the profile step.
    """
    is_new_identity: bool
    identity_id: Optional[UUID] = None
    signup_token: Optional[str] = None
    session: Optional[SessionInfo] = None
