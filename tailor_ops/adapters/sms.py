import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from ..config import Settings, get_settings
from ..exceptions import NotificationError
from ..models import OrderStatus

logger = logging.getLogger(__name__)

READY_FOR_PICKUP = " It is now ready for pickup!"


def build_status_message(customer_name: str, item: str, new_status: str) -> str:
    """Text sent when an order moves to a new status"""
    status = new_status.value if isinstance(new_status, OrderStatus) else new_status
    message = f"Hi {customer_name}, the status of your order ({item}) has been updated to: {status}."
    if status == OrderStatus.READY.value:
        message += READY_FOR_PICKUP
    return message


def build_reminder_message(customer_name: str, kind: str, when: datetime, timezone: str = "UTC") -> str:
    """Text sent the day before a pickup or fitting"""
    local = when.astimezone(ZoneInfo(timezone))
    date_string = local.strftime("%a %b %d %Y")
    return f"Hello {customer_name}, this is a reminder for your {kind} scheduled on {date_string}."


class SMSAdapter:
    def __init__(self, settings: Optional[Settings] = None, client: Optional[Client] = None):
        settings = settings or get_settings()
        self.account_sid = settings.TWILIO_ACCOUNT_SID
        self.auth_token = settings.TWILIO_AUTH_TOKEN
        self.from_number = settings.TWILIO_PHONE_NUMBER

        if client is not None:
            self.client = client
            self.enabled = True
        elif all([self.account_sid, self.auth_token, self.from_number]):
            self.client = Client(self.account_sid, self.auth_token)
            self.enabled = True
        else:
            logger.warning("Twilio not configured - SMS messages will be logged only")
            self.client = None
            self.enabled = False

    async def send_sms(self, to_number: str, body: str) -> Dict[str, Any]:
        """Send SMS message using Twilio. Raises NotificationError on failure."""
        if not self.enabled:
            logger.info(f"[MOCK SMS] To: {to_number}, Body: {body}")
            return {"success": True, "mock": True, "to": to_number}

        try:
            # Twilio's client is blocking
            message = await asyncio.to_thread(
                self.client.messages.create,
                body=body,
                from_=self.from_number,
                to=to_number,
            )
        except TwilioException as e:
            logger.error(f"❌ SMS send failed to {to_number}: {e}")
            raise NotificationError(f"SMS send failed: {e}") from e

        logger.info(f"✅ SMS sent successfully to {to_number}: {message.sid}")
        return {
            "success": True,
            "message_sid": message.sid,
            "status": message.status,
            "to": to_number,
        }


class NotificationDispatcher:
    """Best-effort customer notifications. Never raises to the caller."""

    def __init__(self, sms: SMSAdapter, timezone: str = "UTC"):
        self.sms = sms
        self.timezone = timezone

    async def send_sms(self, phone: str, body: str) -> bool:
        if not phone:
            logger.warning("⚠️ No phone number on record, SMS skipped")
            return False
        try:
            await self.sms.send_sms(phone, body)
            return True
        except Exception as e:
            logger.error(f"❌ Notification to {phone} failed: {e}")
            return False

    async def send_status_change_notification(self, phone: str, customer_name: str, item: str, new_status: str) -> bool:
        return await self.send_sms(phone, build_status_message(customer_name, item, new_status))

    async def send_reminder(self, phone: str, customer_name: str, kind: str, when: datetime) -> Optional[str]:
        """Returns the text that was sent, or None if it was not delivered"""
        message = build_reminder_message(customer_name, kind, when, self.timezone)
        return message if await self.send_sms(phone, message) else None
