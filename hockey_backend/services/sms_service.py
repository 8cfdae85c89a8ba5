"""
SMS service posting messages to an HTTP SMS gateway (TextBee-compatible API).
"""

import os
import logging
from typing import Optional
import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from dotenv import load_dotenv
from hockey_backend.services import settings_service
from hockey_backend.services.settings_service import get_bool_env

load_dotenv()

logger = logging.getLogger(__name__)

SMS_GATEWAY_URL = os.getenv("SMS_GATEWAY_URL")
SMS_GATEWAY_API_KEY = os.getenv("SMS_GATEWAY_API_KEY")
ENABLE_SMS = get_bool_env("ENABLE_SMS", default=True)


async def is_enabled(session: Optional[AsyncSession] = None) -> bool:
    """Check if SMS sending is enabled, checking database first."""
    try:
        return await settings_service.get_bool_setting(
            session, "enable_sms", env_var="ENABLE_SMS", default=True
        )
    except Exception as e:
        logger.warning(f"Error getting ENABLE_SMS from settings, using default: {e}")
        return ENABLE_SMS


async def send_sms(
    phone_number: str, text: str, session: Optional[AsyncSession] = None
) -> bool:
    """
    Send one SMS through the gateway.

    Args:
        phone_number: Recipient phone number
        text: Message text
        session: Optional database session for checking database settings

    Returns:
        bool: True if sent (or sending is disabled), False on failure
    """
    if not await is_enabled(session):
        logger.info(f"SMS sending is disabled. SMS to {phone_number} skipped.")
        return True

    if not SMS_GATEWAY_URL or not SMS_GATEWAY_API_KEY:
        logger.warning("SMS gateway not configured. SMS skipped.")
        return True

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(
                SMS_GATEWAY_URL,
                headers={"x-api-key": SMS_GATEWAY_API_KEY},
                json={"recipients": [phone_number], "message": text},
            )
            resp.raise_for_status()

        logger.info(f"SMS sent successfully to {phone_number}")
        return True

    except httpx.HTTPStatusError as e:
        logger.error(
            f"SMS gateway returned status {e.response.status_code} for {phone_number}: {e.response.text}"
        )
        return False
    except Exception as e:
        logger.error(f"Failed to send SMS to {phone_number}: {str(e)}")
        return False
