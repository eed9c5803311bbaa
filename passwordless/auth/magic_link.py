"""
Magic Link Authentication Service

This module provides the core functionality for passwordless authentication
using secure, time-limited magic links sent via email. It handles token
generation, link delivery and single-use redemption.

Security features:
- Cryptographically secure random tokens (64 chars, ~381 bits)
- 15-minute expiration window (links are often opened on another device)
- Single-use tokens, enforced by an atomic conditional update
- Redeemed rows are kept for audit; only unredeemed expired rows are swept
"""

import logging
import secrets
import string
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from passwordless.auth.identity import IdentityDirectory
from passwordless.auth.rate_limit import CredentialKind, RateLimiter
from passwordless.auth.results import AuthFailure, Issued, Outcome, Verified
from passwordless.auth.store import CredentialStore
from passwordless.auth.validation import is_valid_email, normalize_email
from passwordless.core.config import AuthPolicy
from passwordless.core.email import ResendMailer

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 64


class MagicLinkService:
    """Service class for magic link authentication operations."""

    def __init__(self, policy: AuthPolicy, mailer: ResendMailer, base_url: str):
        self.policy = policy
        self.mailer = mailer
        self.base_url = base_url.rstrip("/")
        self.limiter = RateLimiter(policy)

    @staticmethod
    def generate_token() -> str:
        """Generate a cryptographically secure random token."""
        alphabet = string.ascii_letters + string.digits
        return ''.join(secrets.choice(alphabet) for _ in range(TOKEN_LENGTH))

    @staticmethod
    def build_magic_link_url(base_url: str, token: str, email: str) -> str:
        """Build the complete magic link URL for email delivery."""
        query = urlencode({"token": token, "email": email})
        return f"{base_url}/auth/magic-link?{query}"

    async def issue(
        self,
        db: AsyncSession,
        email: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Outcome[Issued]:
        """
        Create and email a new magic link for the given address.

        Earlier unused links stay valid until they expire; each is redeemed
        by its own exact token.
        """
        email = normalize_email(email)
        if not is_valid_email(email):
            return AuthFailure.validation("Please enter a valid email address")

        decision = await self.limiter.can_issue(db, email, CredentialKind.magic_link)
        if not decision.allowed:
            return AuthFailure.rate_limited(decision.cooldown_minutes or 1)

        token = self.generate_token()
        magic_link = await CredentialStore.add_magic_link(
            db,
            email,
            token,
            self.policy.link_expiry,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        link = self.build_magic_link_url(self.base_url, token, email)

        expires_in_minutes = int(self.policy.link_expiry.total_seconds() // 60)
        sent = await self.mailer.send_magic_link(email, link, expires_in_minutes)
        if not sent:
            logger.error("Magic link delivery to %s failed, removing token %s", email, token[:8] + "...")
            await CredentialStore.delete_magic_link(db, magic_link)
            return AuthFailure.delivery("sign-in link")

        logger.info(
            "Magic link sent to %s, token: %s",
            email,
            token[:8] + "..."  # Log partial token for debugging
        )
        return Issued(email=email, expires_at=magic_link.expires_at, link=link)

    async def verify(
        self,
        db: AsyncSession,
        token: str,
        email: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Outcome[Verified]:
        """
        Validate and redeem a magic link token.

        Security checks:
        - Token exists for this exact email and hasn't been used
        - Token hasn't expired
        - The address isn't locked out by repeated failures
        """
        email = normalize_email(email)
        token = (token or "").strip()
        if not token or not is_valid_email(email):
            return AuthFailure.invalid_or_expired("magic link")

        if await self.limiter.is_locked(db, email):
            logger.warning("Magic link redemption for %s refused: locked out", email)
            return AuthFailure.locked(self.limiter.lockout_minutes)

        await self.cleanup_expired_links(db)
        await self.limiter.purge_stale_attempts(db)

        magic_link = await CredentialStore.consume_magic_link(db, token, email)
        if magic_link is None:
            await self.limiter.record_attempt(db, email, False, ip_address, user_agent)
            remaining = await self.limiter.remaining_attempts(db, email)
            logger.info("Rejected magic link token %s for %s", token[:8] + "...", email)
            return AuthFailure.invalid_or_expired("magic link", remaining)

        await self.limiter.record_attempt(db, email, True, ip_address, user_agent)

        identity = await IdentityDirectory.find_by_email(db, email)
        logger.info("Magic link redeemed for %s (new identity: %s)", email, identity is None)
        return Verified(
            email=email,
            is_new_identity=identity is None,
            identity_id=identity.id if identity else None,
        )

    @staticmethod
    async def cleanup_expired_links(db: AsyncSession) -> int:
        """
        Clean up expired, unredeemed magic links.

        Returns the number of links deleted, or 0 if the sweep failed.
        """
        try:
            return await CredentialStore.delete_expired_links(db)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning("Expired magic link sweep failed: %s", e)
            return 0
