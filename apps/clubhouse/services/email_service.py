"""
Email service using SendGrid for member notices.
"""

import os
import asyncio
import logging
from typing import Optional
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content
from dotenv import load_dotenv

from clubhouse.database.models import NotificationStatus

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def get_bool_env(key: str, default: bool = True) -> bool:
    """
    Parse a boolean environment variable from a string value.

    .env files store all values as strings, so this function converts string
    values like "true", "True", "TRUE", "1", "yes" to True, and everything
    else (including "false", "False", "0", "no", empty string) to False.

    Args:
        key: Environment variable name
        default: Default value if the variable is not set

    Returns:
        bool: Parsed boolean value
    """
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def _send_sync(api_key: str, from_email: str, to_address: str, subject: str, body: str) -> int:
    message = Mail(
        from_email=Email(from_email),
        to_emails=To(to_address),
        subject=subject,
        plain_text_content=Content("text/plain", body),
    )
    sg = SendGridAPIClient(api_key)
    response = sg.send(message)
    return response.status_code


async def send_email(to_address: Optional[str], subject: str, body: str) -> NotificationStatus:
    """
    Send a plain-text email via SendGrid.

    Args:
        to_address: Recipient address; members without one are skipped
        subject: Email subject
        body: Plain text body

    Returns:
        NotificationStatus.SENT, SKIPPED (disabled, unconfigured or no address)
        or FAILED. Never raises for delivery problems.
    """
    if not get_bool_env("ENABLE_EMAIL", default=True):
        logger.info("Email sending is disabled. Email notification skipped.")
        return NotificationStatus.SKIPPED

    api_key = os.getenv("SENDGRID_API_KEY")
    if not api_key:
        logger.warning("SENDGRID_API_KEY not configured. Email notification skipped.")
        return NotificationStatus.SKIPPED

    if not to_address:
        logger.info("Recipient has no email address. Email notification skipped.")
        return NotificationStatus.SKIPPED

    from_email = os.getenv("SENDGRID_FROM_EMAIL", "noreply@clubhouse.example")
    try:
        # The SendGrid client is blocking; keep it off the event loop
        status_code = await asyncio.to_thread(
            _send_sync, api_key, from_email, to_address, subject, body
        )
    except Exception as e:
        logger.error(f"Failed to send email to {to_address}: {str(e)}")
        return NotificationStatus.FAILED

    if 200 <= status_code < 300:
        logger.info(f"Email '{subject}' sent to {to_address}")
        return NotificationStatus.SENT
    logger.error(f"SendGrid returned status {status_code} for {to_address}")
    return NotificationStatus.FAILED
