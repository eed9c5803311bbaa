"""
Email Service

Handles sending verification codes, magic links and welcome emails using
Resend. Supports both development (log output) and production (Resend API)
modes.

Every send reports a boolean success signal instead of raising: issuers roll
back the credential they just stored when delivery fails, and the welcome
email is best-effort.
"""

import asyncio
import html
import logging
from functools import lru_cache

import resend

from passwordless.core.config import get_settings

logger = logging.getLogger(__name__)

BRAND_NAME = "mywoki"
BRAND_COLOR = "#10B981"


def _wrap(title: str, body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>{title}</title>
    </head>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
        <div style="text-align: center; margin-bottom: 30px;">
            <h1 style="color: {BRAND_COLOR};">{BRAND_NAME}</h1>
        </div>
        {body}
        <hr style="border: none; border-top: 1px solid #eee; margin: 30px 0;">
        <p style="color: #666; font-size: 14px;">
            Best regards,<br>
            The {BRAND_NAME} Team
        </p>
    </body>
    </html>
    """


class ResendMailer:
    """Outbound email collaborator backed by the Resend API."""

    def __init__(self, api_key: str, from_email: str, code_expiry_minutes: int = 10):
        self.api_key = api_key
        self.from_email = from_email
        self.code_expiry_minutes = code_expiry_minutes

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send_verification_code(self, email: str, code: str) -> bool:
        """Send a one-time sign-in code."""
        if not self.is_configured:
            logger.info("[DEV] Verification code for %s: %s", email, code)
            return True

        body = f"""
        <h2 style="color: #333;">Verify Your Email</h2>
        <p>Enter this code to continue with your {BRAND_NAME} account:</p>
        <div style="background-color: #f3f4f6; padding: 20px; text-align: center; font-size: 32px; letter-spacing: 10px; font-weight: bold; color: #111827; margin: 20px 0;">
            {code}
        </div>
        <p style="color: #6B7280; font-size: 14px;">
            This code will expire in {self.code_expiry_minutes} minutes. If you didn't request this, you can safely ignore this email.
        </p>
        """
        return await self._send(
            to=email,
            subject=f"Your {BRAND_NAME} Verification Code",
            html_content=_wrap(f"Your {BRAND_NAME} Verification Code", body),
        )

    async def send_magic_link(self, email: str, link: str, expires_in_minutes: int = 15) -> bool:
        """Send magic link email for passwordless authentication."""
        if not self.is_configured:
            logger.info("[DEV] Magic link for %s: %s (expires in %d minutes)", email, link, expires_in_minutes)
            return True

        body = f"""
        <h2 style="color: #333;">Sign In to {BRAND_NAME}</h2>
        <p>Hi there,</p>
        <p>You requested to sign in to {BRAND_NAME}. Click the button below to access your account:</p>

        <div style="text-align: center; margin: 30px 0;">
            <a href="{html.escape(link, quote=True)}"
               style="background-color: {BRAND_COLOR}; color: white; padding: 15px 30px; text-decoration: none; border-radius: 5px; display: inline-block; font-weight: bold;">
                Sign In to {BRAND_NAME}
            </a>
        </div>

        <p><strong>This link expires in {expires_in_minutes} minutes</strong> and works only once.</p>
        <p>If you didn't request this sign-in link, please ignore this email.</p>
        """
        return await self._send(
            to=email,
            subject=f"Your {BRAND_NAME} Sign-In Link",
            html_content=_wrap(f"Your {BRAND_NAME} Sign-In Link", body),
        )

    async def send_welcome_email(self, email: str, name: str) -> bool:
        """Greet a newly created identity."""
        if not self.is_configured:
            logger.info("[DEV] Welcome email for %s (%s)", email, name)
            return True

        body = f"""
        <h2 style="color: #333;">Welcome to {BRAND_NAME}, {html.escape(name)}!</h2>
        <p>Your account is ready to use.</p>
        """
        return await self._send(
            to=email,
            subject=f"Welcome to {BRAND_NAME}!",
            html_content=_wrap(f"Welcome to {BRAND_NAME}", body),
        )

    async def _send(self, to: str, subject: str, html_content: str) -> bool:
        resend.api_key = self.api_key
        params = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html_content,
        }

        try:
            # The Resend SDK is synchronous; keep the event loop free.
            await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.error("Failed to send '%s' email to %s: %s", subject, to, e)
            return False

        logger.info("[EMAIL] '%s' sent to %s", subject, to)
        return True


@lru_cache()
def get_mailer() -> ResendMailer:
    """Return the process-wide mailer configured from settings."""
    settings = get_settings()
    return ResendMailer(
        api_key=settings.resend_api_key.get_secret_value(),
        from_email=settings.from_email,
        code_expiry_minutes=settings.code_expiry_minutes,
    )
