"""
Passwordless Authentication Endpoints

This module provides the API endpoints for passwordless authentication:
- POST /auth/code/request - Email a one-time code
- POST /auth/code/verify - Verify a code
- POST /auth/magic-link/request - Email a magic link
- POST /auth/magic-link/verify - Redeem a magic link
- POST /auth/profile - Create the identity for a newly verified email
- GET /auth/email-exists - Check whether an identity exists for an email
- GET /auth/session - Describe the current session
- POST /auth/logout - Drop the session cookie

Returning identities get a session cookie straight from verification; new
identities get a signup token that the profile step exchanges for one.
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from passwordless.auth.codes import CodeService
from passwordless.auth.dependencies import (
    get_code_service,
    get_magic_link_service,
    get_session_service,
)
from passwordless.auth.identity import IdentityDirectory
from passwordless.auth.magic_link import MagicLinkService
from passwordless.auth.results import AuthFailure, Verified, raise_for_failure
from passwordless.auth.session import SessionService
from passwordless.auth.validation import is_valid_email, normalize_email
from passwordless.core.config import get_settings
from passwordless.db import get_session
from passwordless.models.identity import (
    EmailExistsResponse,
    IdentityRead,
    ProfileRequest,
)
from passwordless.models.magic_link import (
    MagicLinkRequest,
    MagicLinkResponse,
    MagicLinkVerifyRequest,
)
from passwordless.models.session import (
    AuthenticatedResponse,
    SessionInfo,
    VerificationResponse,
)
from passwordless.models.verification_code import (
    CodeRequest,
    CodeRequestResponse,
    CodeVerifyRequest,
)

router = APIRouter(prefix="/auth")
logger = logging.getLogger(__name__)
settings = get_settings()


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()[:45]
    return request.client.host if request.client else None


def _user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


def _show_credentials() -> bool:
    return settings.dev_show_credentials and not settings.is_production


async def _finish_verification(
    verified: Verified,
    response: Response,
    db: AsyncSession,
    sessions: SessionService,
) -> VerificationResponse:
    """Sign returning identities in; hand new ones a signup token."""
    if verified.is_new_identity:
        return VerificationResponse(
            is_new_identity=True,
            signup_token=sessions.issue_signup_ticket(verified.email),
        )

    identity = await IdentityDirectory.get(db, verified.identity_id)
    if identity is None or not identity.is_active:
        raise_for_failure(AuthFailure.not_found("Account not found or deactivated"))

    session = sessions.create_session(identity)
    SessionService.set_session_cookie(response, session, secure=settings.is_production)
    return VerificationResponse(
        is_new_identity=False,
        identity_id=identity.id,
        session=SessionInfo(issued_at=session.issued_at, expires_at=session.expires_at),
    )


@router.post("/code/request", response_model=CodeRequestResponse)
async def request_code(
    payload: CodeRequest,
    db: AsyncSession = Depends(get_session),
    codes: CodeService = Depends(get_code_service),
) -> CodeRequestResponse:
    """
    Email a one-time code to the given address.

    The code expires after 10 minutes. Resends are subject to a short
    cooldown and hourly/daily ceilings.
    """
    outcome = await codes.issue(db, payload.email, payload.purpose)
    if isinstance(outcome, AuthFailure):
        raise_for_failure(outcome)

    expires_in = int(codes.policy.code_expiry.total_seconds() // 60)
    return CodeRequestResponse(
        message="Verification code sent to your email address",
        expires_in_minutes=expires_in,
        dev_code=outcome.code if _show_credentials() else None,
    )


@router.post("/code/verify", response_model=VerificationResponse)
async def verify_code(
    payload: CodeVerifyRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_session),
    codes: CodeService = Depends(get_code_service),
    sessions: SessionService = Depends(get_session_service),
) -> VerificationResponse:
    """Verify a one-time code and continue to a session or the profile step."""
    outcome = await codes.verify(
        db,
        payload.email,
        payload.code,
        ip_address=_client_ip(request),
        user_agent=_user_agent(request),
    )
    if isinstance(outcome, AuthFailure):
        raise_for_failure(outcome)

    return await _finish_verification(outcome, response, db, sessions)


@router.post("/magic-link/request", response_model=MagicLinkResponse)
async def request_magic_link(
    payload: MagicLinkRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
    links: MagicLinkService = Depends(get_magic_link_service),
) -> MagicLinkResponse:
    """
    Request a magic link for passwordless authentication.

    Generates a secure single-use link and sends it via email. The link
    expires after 15 minutes.
    """
    outcome = await links.issue(
        db,
        payload.email,
        ip_address=_client_ip(request),
        user_agent=_user_agent(request),
    )
    if isinstance(outcome, AuthFailure):
        raise_for_failure(outcome)

    expires_in = int(links.policy.link_expiry.total_seconds() // 60)
    return MagicLinkResponse(
        message="Magic link sent to your email address",
        expires_in_minutes=expires_in,
        link=outcome.link if _show_credentials() else None,
    )


@router.post("/magic-link/verify", response_model=VerificationResponse)
async def verify_magic_link(
    payload: MagicLinkVerifyRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_session),
    links: MagicLinkService = Depends(get_magic_link_service),
    sessions: SessionService = Depends(get_session_service),
) -> VerificationResponse:
    """Redeem a magic link token and continue to a session or the profile step."""
    outcome = await links.verify(
        db,
        payload.token,
        payload.email,
        ip_address=_client_ip(request),
        user_agent=_user_agent(request),
    )
    if isinstance(outcome, AuthFailure):
        raise_for_failure(outcome)

    return await _finish_verification(outcome, response, db, sessions)


@router.post("/profile", response_model=AuthenticatedResponse)
async def complete_profile(
    payload: ProfileRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
    sessions: SessionService = Depends(get_session_service),
) -> AuthenticatedResponse:
    """
    Create the identity for a freshly verified email and start its session.

    Requires the signup token returned by code or magic link verification.
    """
    ticket_email = sessions.read_signup_ticket(payload.signup_token)
    if ticket_email is None or ticket_email != normalize_email(payload.email):
        raise HTTPException(
            status_code=401,
            detail={
                "error": "verification_required",
                "message": "Your email verification has expired or does not match",
                "action": "Verify your email again"
            }
        )

    outcome = await sessions.complete_new_identity(
        db,
        payload.email,
        payload.name,
        account_type=payload.account_type,
        purpose=payload.purpose,
    )
    if isinstance(outcome, AuthFailure):
        raise_for_failure(outcome)

    SessionService.set_session_cookie(response, outcome.session, secure=settings.is_production)
    return AuthenticatedResponse(
        message="Profile created",
        identity=IdentityRead.from_identity(outcome.identity),
        session=SessionInfo(
            issued_at=outcome.session.issued_at,
            expires_at=outcome.session.expires_at,
        ),
    )


@router.get("/email-exists", response_model=EmailExistsResponse)
async def check_email_exists(
    email: str,
    db: AsyncSession = Depends(get_session),
) -> EmailExistsResponse:
    """Report whether an identity is registered for the email."""
    email = normalize_email(email)
    if not is_valid_email(email):
        return EmailExistsResponse(exists=False)
    return EmailExistsResponse(exists=await IdentityDirectory.exists(db, email))


@router.get("/session", response_model=AuthenticatedResponse)
async def get_current_session(
    request: Request,
    db: AsyncSession = Depends(get_session),
    sessions: SessionService = Depends(get_session_service),
) -> AuthenticatedResponse:
    """
    Get information about the current session.

    Returns session and identity details if authenticated, 401 if not.
    """
    session_token = SessionService.get_session_token_from_request(request)

    if not session_token:
        raise HTTPException(
            status_code=401,
            detail="No active session"
        )

    validation = await sessions.validate_session(db, session_token)
    if not validation.is_valid:
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired session"
        )

    return AuthenticatedResponse(
        message="Authenticated",
        identity=IdentityRead.from_identity(validation.identity),
        session=SessionInfo(expires_at=validation.expires_at),
    )


@router.post("/logout")
async def logout(response: Response) -> Dict[str, str]:
    """
    Log out the current client by clearing its session cookie.

    Tokens are not blacklisted server-side; a copied token stays valid until
    it expires.
    """
    SessionService.revoke(response, secure=settings.is_production)
    return {"message": "Logged out successfully"}
