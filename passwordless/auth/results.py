"""
Authentication Outcomes

Every issue/verify operation returns either a success value or an
AuthFailure. Failures here are expected, user-facing outcomes (a typo, a
cooldown, an expired code), so services hand them back as values and the
HTTP layer translates them into responses. Only infrastructure faults, such
as a lost database connection, propagate as exceptions.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TypeVar, Union
from uuid import UUID

from fastapi import HTTPException

from passwordless.models.identity import Identity
from passwordless.models.session import SessionToken


class FailureKind(str, enum.Enum):
    VALIDATION = "validation_error"
    RATE_LIMITED = "rate_limited"
    LOCKED = "locked"
    INVALID_OR_EXPIRED = "invalid_or_expired"
    DELIVERY_FAILURE = "delivery_failure"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class AuthFailure:
    kind: FailureKind
    message: str
    cooldown_minutes: Optional[int] = None
    remaining_attempts: Optional[int] = None

    @property
    def restart_flow(self) -> bool:
        """
        Whether the client should go back to the email step.

        Only a failed delivery does this: no credential exists, so there is
        nothing to type in. Every other failure keeps the client where it is.
        """
        return self.kind is FailureKind.DELIVERY_FAILURE

    @classmethod
    def validation(cls, message: str) -> "AuthFailure":
        return cls(FailureKind.VALIDATION, message)

    @classmethod
    def rate_limited(cls, cooldown_minutes: int) -> "AuthFailure":
        plural = "" if cooldown_minutes == 1 else "s"
        return cls(
            FailureKind.RATE_LIMITED,
            f"Please wait {cooldown_minutes} minute{plural} before requesting a new one",
            cooldown_minutes,
        )

    @classmethod
    def locked(cls, cooldown_minutes: int) -> "AuthFailure":
        return cls(
            FailureKind.LOCKED,
            "Too many failed attempts. Please try again later",
            cooldown_minutes,
        )

    @classmethod
    def invalid_or_expired(
        cls,
        subject: str = "verification code",
        remaining_attempts: Optional[int] = None,
    ) -> "AuthFailure":
        # Same message whether the credential was wrong, used or expired.
        return cls(
            FailureKind.INVALID_OR_EXPIRED,
            f"Invalid or expired {subject}",
            remaining_attempts=remaining_attempts,
        )

    @classmethod
    def delivery(cls, subject: str = "verification email") -> "AuthFailure":
        return cls(FailureKind.DELIVERY_FAILURE, f"Failed to send {subject}. Please try again")

    @classmethod
    def not_found(cls, message: str = "Account not found") -> "AuthFailure":
        return cls(FailureKind.NOT_FOUND, message)


@dataclass(frozen=True)
class Issued:
    """A credential was stored and handed to the mailer."""
    email: str
    expires_at: datetime
    link: Optional[str] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class Verified:
    """Proof of email control; says whether a profile step is needed."""
    email: str
    is_new_identity: bool
    identity_id: Optional[UUID] = None


@dataclass(frozen=True)
class ProfileCompleted:
    identity: Identity
    session: SessionToken


T = TypeVar("T")
Outcome = Union[T, AuthFailure]


# Exception classes for the HTTP layer
class AuthHTTPError(HTTPException):
    """Base exception for authentication errors surfaced over HTTP."""
    pass


class ValidationFailedError(AuthHTTPError):
    def __init__(self, message: str):
        super().__init__(
            status_code=400,
            detail={
                "error": FailureKind.VALIDATION.value,
                "message": message,
                "action": "Correct the highlighted field and try again"
            }
        )


class InvalidCredentialError(AuthHTTPError):
    """Raised when a code or magic link is wrong, used or expired."""

    def __init__(
        self,
        message: str = "Invalid or expired verification code",
        remaining_attempts: Optional[int] = None,
    ):
        detail = {
            "error": FailureKind.INVALID_OR_EXPIRED.value,
            "message": message,
            "action": "Check the code or request a new one"
        }
        if remaining_attempts is not None:
            detail["remaining_attempts"] = remaining_attempts
        super().__init__(status_code=400, detail=detail)


class RateLimitError(AuthHTTPError):
    """Raised when issuance is rate limited or verification is locked out."""

    def __init__(self, failure: AuthFailure):
        cooldown = failure.cooldown_minutes or 1
        super().__init__(
            status_code=429,
            detail={
                "error": failure.kind.value,
                "message": failure.message,
                "cooldown_minutes": cooldown,
            },
            headers={"Retry-After": str(cooldown * 60)},
        )


class DeliveryError(AuthHTTPError):
    def __init__(self, message: str):
        super().__init__(
            status_code=503,
            detail={
                "error": FailureKind.DELIVERY_FAILURE.value,
                "message": message,
                "action": "Re-enter your email and try again",
                "restart": True,
            }
        )


class NotFoundError(AuthHTTPError):
    def __init__(self, message: str):
        super().__init__(
            status_code=404,
            detail={"error": FailureKind.NOT_FOUND.value, "message": message}
        )


def raise_for_failure(failure: AuthFailure) -> None:
    """Translate a service failure into the matching HTTP error."""
    if failure.kind in (FailureKind.RATE_LIMITED, FailureKind.LOCKED):
        raise RateLimitError(failure)
    if failure.kind is FailureKind.INVALID_OR_EXPIRED:
        raise InvalidCredentialError(failure.message, failure.remaining_attempts)
    if failure.kind is FailureKind.DELIVERY_FAILURE:
        raise DeliveryError(failure.message)
    if failure.kind is FailureKind.NOT_FOUND:
        raise NotFoundError(failure.message)
    raise ValidationFailedError(failure.message)
