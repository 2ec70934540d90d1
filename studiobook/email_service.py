"""
Email delivery through Resend
"""

import asyncio
import logging
from typing import Union

import resend

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailNotConfiguredError(Exception):
    pass


async def send_email(to: Union[str, list[str]], subject: str, html: str) -> dict:
    """
    Send an email via Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        html: Pre-rendered HTML body

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailNotConfiguredError("Email service not configured")

    recipients = [to] if isinstance(to, str) else to
    logger.info(f"📧 Sending email via Resend to: {recipients}")
    # Run in thread pool to not block the event loop
    response = await asyncio.to_thread(
        resend.Emails.send,
        {
            "from": EMAIL_FROM_ADDRESS,
            "to": recipients,
            "subject": subject,
            "html": html,
        },
    )
    logger.info(f"✅ Email sent successfully via Resend: {response}")
    return response
