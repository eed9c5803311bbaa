"""
Authentication Dependencies

This module provides FastAPI dependencies for the passwordless flow:

- get_code_service / get_magic_link_service / get_session_service:
  service instances wired to settings and the mailer
- current_identity: the identity behind the session cookie
- current_active_identity: same, ensuring the identity is active

All identity dependencies read the session cookie set by the auth router.
"""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from passwordless.auth.codes import CodeService
from passwordless.auth.magic_link import MagicLinkService
from passwordless.auth.session import SessionService
from passwordless.core.config import AuthPolicy, get_auth_policy, get_settings
from passwordless.core.email import ResendMailer, get_mailer
from passwordless.db import get_session
from passwordless.models.identity import Identity
from passwordless.models.session import SessionStatus


def get_code_service(
    policy: AuthPolicy = Depends(get_auth_policy),
    mailer: ResendMailer = Depends(get_mailer),
) -> CodeService:
    return CodeService(policy, mailer)


def get_magic_link_service(
    policy: AuthPolicy = Depends(get_auth_policy),
    mailer: ResendMailer = Depends(get_mailer),
) -> MagicLinkService:
    return MagicLinkService(policy, mailer, get_settings().app_url)


def get_session_service(
    policy: AuthPolicy = Depends(get_auth_policy),
    mailer: ResendMailer = Depends(get_mailer),
) -> SessionService:
    secret = get_settings().session_secret.get_secret_value()
    return SessionService(policy, secret, mailer)


async def current_identity(
    request: Request,
    db: AsyncSession = Depends(get_session),
    sessions: SessionService = Depends(get_session_service),
) -> Identity:
    """
    Get the current authenticated identity from the session cookie.

    Raises 401 if no valid session is found.
    """
    session_token = SessionService.get_session_token_from_request(request)

    if not session_token:
        raise HTTPException(
            status_code=401,
            detail={
                "error": "authentication_required",
                "message": "Authentication is required to access this resource",
                "action": "Please log in"
            }
        )

    validation = await sessions.validate_session(db, session_token)

    if not validation.is_valid:
        raise HTTPException(
            status_code=401,
            detail={
                "error": "session_expired" if validation.status is SessionStatus.expired else "invalid_session",
                "message": "Your session is invalid or has expired",
                "action": "Please log in again"
            }
        )

    return validation.identity


async def current_active_identity(
    identity: Identity = Depends(current_identity)
) -> Identity:
    """
    Get the current authenticated identity, ensuring it is active.

    validate_session already rejects inactive identities; this guard keeps
    routes safe if that policy ever changes.
    """
    if not identity.is_active:
        raise HTTPException(
            status_code=403,
            detail={
                "error": "inactive_identity",
                "message": "Your account has been deactivated",
                "action": "Contact support for assistance"
            }
        )

    return identity
