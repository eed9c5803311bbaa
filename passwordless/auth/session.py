"""
Session Management Service

This module turns a successful verification into an authenticated session.
Sessions are signed tokens (HS256, PyJWT) with a fixed lifetime from
issuance; they are not renewed on use. The client holds the token in an
HttpOnly cookie and the server treats it as a capability: there is no
session table and no revocation list, so logging out clears the cookie and a
copied token stays valid until it expires.

Features:
- Signed session token generation and validation (valid / expired / invalid)
- Short-lived signup tickets proving a new identity verified its email
- Profile completion for new identities, with a best-effort welcome email
- Session cookie helpers
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from passwordless.auth.identity import IdentityDirectory
from passwordless.auth.results import AuthFailure, Outcome, ProfileCompleted
from passwordless.auth.validation import (
    clean_name,
    is_valid_email,
    is_valid_name,
    normalize_email,
)
from passwordless.core.clock import utc_now
from passwordless.core.config import AuthPolicy
from passwordless.core.email import ResendMailer
from passwordless.models.identity import Identity
from passwordless.models.session import SessionStatus, SessionToken, SessionValidation

logger = logging.getLogger(__name__)

ACCOUNT_TYPES = ("individual", "organization")


class SessionService:
    """Service class for session management operations."""

    SESSION_COOKIE_NAME = "passwordless_session"
    ALGORITHM = "HS256"
    ISSUER = "passwordless"
    AUDIENCE = "passwordless"

    SESSION_TOKEN_TYPE = "session"
    SIGNUP_TOKEN_TYPE = "signup"

    def __init__(self, policy: AuthPolicy, secret: str, mailer: ResendMailer):
        self.policy = policy
        self._secret = secret
        self.mailer = mailer

    # Tokens

    def _encode(self, claims: dict) -> str:
        return jwt.encode(claims, self._secret, algorithm=self.ALGORITHM)

    def _decode(self, token: str) -> dict:
        return jwt.decode(
            token,
            self._secret,
            algorithms=[self.ALGORITHM],
            audience=self.AUDIENCE,
            issuer=self.ISSUER,
            options={"require": ["exp", "iat", "sub"]},
        )

    def create_session(self, identity: Identity) -> SessionToken:
        """Issue a session for the identity with a fixed lifetime."""
        issued_at = utc_now().replace(microsecond=0)
        expires_at = issued_at + self.policy.session_lifetime
        token = self._encode({
            "sub": str(identity.id),
            "email": identity.email,
            "typ": self.SESSION_TOKEN_TYPE,
            "iss": self.ISSUER,
            "aud": self.AUDIENCE,
            "iat": issued_at,
            "exp": expires_at,
        })
        logger.info("Session issued for identity %s until %s", identity.id, expires_at.isoformat())
        return SessionToken(
            token=token,
            identity_id=identity.id,
            email=identity.email,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    async def validate_session(self, db: AsyncSession, token: Optional[str]) -> SessionValidation:
        """
        Resolve a presented token to its identity.

        Returns expired for a well-signed token past its lifetime, invalid for
        anything else that fails (bad signature, wrong token type, unknown or
        deactivated identity).
        """
        if not token:
            return SessionValidation(SessionStatus.invalid)

        try:
            claims = self._decode(token)
        except jwt.ExpiredSignatureError:
            return SessionValidation(SessionStatus.expired)
        except jwt.InvalidTokenError:
            return SessionValidation(SessionStatus.invalid)

        if claims.get("typ") != self.SESSION_TOKEN_TYPE:
            return SessionValidation(SessionStatus.invalid)

        try:
            identity_id = UUID(claims["sub"])
        except ValueError:
            return SessionValidation(SessionStatus.invalid)

        identity = await IdentityDirectory.get(db, identity_id)
        if identity is None or not identity.is_active:
            return SessionValidation(SessionStatus.invalid)

        expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        return SessionValidation(SessionStatus.valid, identity, expires_at)

    def issue_signup_ticket(self, email: str) -> str:
        """Short-lived proof that `email` was just verified and has no identity yet."""
        now = utc_now()
        return self._encode({
            "sub": normalize_email(email),
            "typ": self.SIGNUP_TOKEN_TYPE,
            "iss": self.ISSUER,
            "aud": self.AUDIENCE,
            "iat": now,
            "exp": now + self.policy.signup_ticket_lifetime,
        })

    def read_signup_ticket(self, ticket: Optional[str]) -> Optional[str]:
        """Return the verified email carried by a signup ticket, or None."""
        if not ticket:
            return None
        try:
            claims = self._decode(ticket)
        except jwt.InvalidTokenError:
            return None
        if claims.get("typ") != self.SIGNUP_TOKEN_TYPE:
            return None
        return claims["sub"]

    # Profile completion

    async def complete_new_identity(
        self,
        db: AsyncSession,
        email: str,
        name: str,
        account_type: Optional[str] = None,
        purpose: Optional[str] = None,
    ) -> Outcome[ProfileCompleted]:
        """
        Create the identity for a verified email and sign it in.

        The email must already have been verified by a code or magic link.
        A mail outage never blocks profile creation: the welcome email is
        attempted and its failure only logged.
        """
        email = normalize_email(email)
        if not is_valid_email(email):
            return AuthFailure.validation("Please enter a valid email address")

        name = clean_name(name)
        if not is_valid_name(name):
            return AuthFailure.validation("Name must be between 2 and 50 characters long")

        if account_type is not None and account_type not in ACCOUNT_TYPES:
            return AuthFailure.validation("Account type must be individual or organization")

        if purpose:
            purpose = clean_name(purpose)[:200] or None

        existing = await IdentityDirectory.find_by_email(db, email)
        if existing is not None:
            logger.info("Profile completion for existing identity %s, issuing session only", existing.id)
            return ProfileCompleted(identity=existing, session=self.create_session(existing))

        identity = await IdentityDirectory.create(
            db,
            email=email,
            name=name,
            account_type=account_type,
            purpose=purpose,
            email_verified=True,
        )
        logger.info("Identity %s created for %s", identity.id, email)

        session = self.create_session(identity)

        if not await self.mailer.send_welcome_email(email, name):
            logger.warning("Welcome email to %s could not be sent", email)

        return ProfileCompleted(identity=identity, session=session)

    # Cookies

    @staticmethod
    def set_session_cookie(
        response: Response,
        session: SessionToken,
        secure: bool = True
    ) -> None:
        """Set session cookie in the response."""
        max_age = int((session.expires_at - utc_now()).total_seconds())
        response.set_cookie(
            key=SessionService.SESSION_COOKIE_NAME,
            value=session.token,
            max_age=max(0, max_age),
            httponly=True,  # Prevent XSS
            secure=secure,  # HTTPS only in production
            samesite="lax"  # CSRF protection
        )

    @staticmethod
    def get_session_token_from_request(request: Request) -> Optional[str]:
        """Extract session token from request cookie."""
        return request.cookies.get(SessionService.SESSION_COOKIE_NAME)

    @staticmethod
    def clear_session_cookie(response: Response, secure: bool = True) -> None:
        """Clear session cookie from the response."""
        response.delete_cookie(
            key=SessionService.SESSION_COOKIE_NAME,
            httponly=True,
            secure=secure,
            samesite="lax"
        )

    @staticmethod
    def revoke(response: Response, secure: bool = True) -> None:
        """
        Drop the client-held session.

        The token itself is not blacklisted; it stays valid until expiry.
        """
        SessionService.clear_session_cookie(response, secure=secure)
