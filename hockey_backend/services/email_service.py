"""
Outgoing email through SendGrid.

Failures are logged and reported as ``False``; callers treat delivery as
best effort and never roll back a registration because a mail bounced.
"""

import os
import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, To
from dotenv import load_dotenv
from hockey_backend.services import settings_service

load_dotenv()

logger = logging.getLogger(__name__)

SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL", "noreply@hockey-club.example")
EMAIL_SETTING_KEY = "enable_email"


async def is_enabled(session: Optional[AsyncSession] = None) -> bool:
    """Email kill switch: ``enable_email`` setting, then ENABLE_EMAIL, default on."""
    return await settings_service.get_bool_setting(
        session, EMAIL_SETTING_KEY, env_var="ENABLE_EMAIL", default=True
    )


def _build_message(to_email: str, subject: str, body: str, is_html: bool) -> Mail:
    message = Mail(
        from_email=Email(SENDGRID_FROM_EMAIL),
        to_emails=To(to_email),
        subject=subject,
    )
    message.add_content(Content("text/html" if is_html else "text/plain", body))
    return message


async def send_email(
    to_email: str,
    subject: str,
    body: str,
    is_html: bool = False,
    session: Optional[AsyncSession] = None,
) -> bool:
    """
    Send one email.

    Returns True when the message was accepted, or when email is switched off
    or unconfigured (nothing to retry). Returns False when SendGrid refused it
    or the request failed.
    """
    if not await is_enabled(session):
        logger.info(f"Email disabled, not sending '{subject}' to {to_email}")
        return True

    if not SENDGRID_API_KEY:
        logger.warning(f"SENDGRID_API_KEY missing, not sending '{subject}' to {to_email}")
        return True

    try:
        response = SendGridAPIClient(SENDGRID_API_KEY).send(
            _build_message(to_email, subject, body, is_html)
        )
    except Exception as e:
        logger.error(f"SendGrid request for {to_email} failed: {e}")
        return False

    if 200 <= response.status_code < 300:
        logger.info(f"Email '{subject}' accepted for {to_email}")
        return True
    logger.error(f"SendGrid rejected email to {to_email}: {response.status_code} {response.body}")
    return False
