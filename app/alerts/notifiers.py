"""Outbound alert transports: Resend email, Slack webhook, Twilio SMS.

Each sender reports success as a bool and never raises; one transport
failing must not stop the others.
"""

from typing import Any, Dict

import httpx
import structlog
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from app.config import settings

logger = structlog.get_logger()


async def send_email(to: str, subject: str, html: str) -> bool:
    """Send an email through the Resend HTTP API"""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                settings.resend_api_url,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
                json={
                    "from": settings.resend_from_email,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                },
                timeout=settings.notification_timeout_seconds,
            )
            response.raise_for_status()
        return True
    except httpx.HTTPError as e:
        logger.error("Failed to send alert email", to=to, error=str(e))
        return False


async def post_slack(payload: Dict[str, Any]) -> bool:
    """Post a message to the configured Slack incoming webhook"""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                settings.slack_alerts_webhook,
                json=payload,
                timeout=settings.notification_timeout_seconds,
            )
            response.raise_for_status()
        return True
    except httpx.HTTPError as e:
        logger.error("Failed to send Slack alert", error=str(e))
        return False


def send_sms(to: str, body: str) -> bool:
    """Send an SMS through Twilio"""
    try:
        client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)
        message = client.messages.create(
            body=body,
            from_=settings.twilio_phone_number,
            to=to,
        )
        logger.info("Sent alert SMS", to=to, message_sid=message.sid)
        return True
    except TwilioException as e:
        logger.error("Failed to send alert SMS", to=to, error=str(e))
        return False
