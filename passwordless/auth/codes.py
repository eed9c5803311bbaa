"""
Email Code Issuer/Verifier

Issues six-digit one-time codes by email and verifies them.

Issuance is all-or-nothing from the caller's point of view: the row is
stored first and deleted again if the mailer reports failure. Verification
matches on email and code together, so a resend leaves earlier unexpired
codes redeemable; when the same value was issued twice the newest row is
the one consumed.

Login flow seen by the client:

    EMAIL -> CODE_SENT -> VERIFIED_NEW -> PROFILE -> SESSION
                       -> VERIFIED_EXISTING -> SESSION

CODE_SENT loops on resend (subject to the rate limiter), and a failed
verification leaves the client in CODE_SENT.
"""

import logging
import secrets
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from passwordless.auth.identity import IdentityDirectory
from passwordless.auth.rate_limit import CredentialKind, RateLimiter
from passwordless.auth.results import AuthFailure, Issued, Outcome, Verified
from passwordless.auth.store import CredentialStore
from passwordless.auth.validation import (
    is_valid_code,
    is_valid_email,
    normalize_code,
    normalize_email,
)
from passwordless.core.config import AuthPolicy
from passwordless.core.email import ResendMailer
from passwordless.models.verification_code import CodePurpose

logger = logging.getLogger(__name__)


def generate_code(length: int = 6) -> str:
    """Uniformly random numeric code from the OS CSPRNG, leading zeros kept."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


class CodeService:
    """Issue and verify one-time email codes."""

    def __init__(self, policy: AuthPolicy, mailer: ResendMailer):
        self.policy = policy
        self.mailer = mailer
        self.limiter = RateLimiter(policy)

    async def issue(
        self,
        db: AsyncSession,
        email: str,
        purpose: CodePurpose = CodePurpose.login,
    ) -> Outcome[Issued]:
        email = normalize_email(email)
        if not is_valid_email(email):
            return AuthFailure.validation("Please enter a valid email address")

        decision = await self.limiter.can_issue(db, email, CredentialKind.code)
        if not decision.allowed:
            return AuthFailure.rate_limited(decision.cooldown_minutes or 1)

        code = generate_code(self.policy.code_length)
        row = await CredentialStore.add_code(
            db, email, code, purpose, self.policy.code_expiry
        )

        sent = await self.mailer.send_verification_code(email, code)
        if not sent:
            logger.error("Code delivery to %s failed, removing issued code", email)
            await CredentialStore.delete_code(db, row)
            return AuthFailure.delivery("verification email")

        logger.info("Verification code issued to %s (purpose=%s)", email, purpose.value)
        return Issued(email=email, expires_at=row.expires_at, code=code)

    async def verify(
        self,
        db: AsyncSession,
        email: str,
        code: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Outcome[Verified]:
        email = normalize_email(email)
        code = normalize_code(code)
        if not is_valid_email(email):
            return AuthFailure.validation("Please enter a valid email address")
        if not is_valid_code(code, self.policy.code_length):
            return AuthFailure.validation(
                f"Please enter a valid {self.policy.code_length}-digit code"
            )

        if await self.limiter.is_locked(db, email):
            logger.warning("Code verification for %s refused: locked out", email)
            return AuthFailure.locked(self.limiter.lockout_minutes)

        await self._sweep_expired(db)
        await self.limiter.purge_stale_attempts(db)

        row = await CredentialStore.consume_code(db, email, code)
        if row is None:
            await self.limiter.record_attempt(db, email, False, ip_address, user_agent)
            remaining = await self.limiter.remaining_attempts(db, email)
            logger.info("Code verification failed for %s (%d attempts left)", email, remaining)
            return AuthFailure.invalid_or_expired("verification code", remaining)

        await self.limiter.record_attempt(db, email, True, ip_address, user_agent)

        identity = await IdentityDirectory.find_by_email(db, email)
        logger.info("Code verified for %s (new identity: %s)", email, identity is None)
        return Verified(
            email=email,
            is_new_identity=identity is None,
            identity_id=identity.id if identity else None,
        )

    @staticmethod
    async def _sweep_expired(db: AsyncSession) -> None:
        # Housekeeping only; consume_code checks expiry itself.
        try:
            deleted = await CredentialStore.delete_expired_codes(db)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning("Expired code sweep failed: %s", e)
            return
        if deleted:
            logger.debug("Swept %d expired verification codes", deleted)
