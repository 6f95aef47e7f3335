"""
Pickup and fitting reminders

One pass finds customers with a pickup or fitting scheduled tomorrow (in
the business timezone) and texts each of them. Scheduling the pass is left
to the caller (cron, a worker, scripts/run_reminders.py).
"""

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from ..adapters.sms import NotificationDispatcher
from ..models import Customer, Notification
from ..utils.dates import utc_now
from .gateway import PersistenceGateway

logger = logging.getLogger(__name__)

REMINDER_KINDS = {"pickup": "pickup_date", "fitting": "fitting_date"}


def tomorrow_window(now: datetime, tz_name: str) -> Tuple[datetime, datetime]:
    """Start and end of tomorrow in tz_name, as UTC datetimes"""
    tz = ZoneInfo(tz_name)
    tomorrow = now.astimezone(tz).date() + timedelta(days=1)
    start = datetime.combine(tomorrow, time.min, tzinfo=tz)
    end = datetime.combine(tomorrow, time.max, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


class ReminderService:
    def __init__(self, gateway: PersistenceGateway, notifier: NotificationDispatcher, timezone_name: str = "UTC"):
        self.gateway = gateway
        self.notifier = notifier
        self.timezone_name = timezone_name

    async def send_due_reminders(self, now: Optional[datetime] = None) -> int:
        """Send tomorrow's reminders. Returns how many were sent."""
        start, end = tomorrow_window(now or utc_now(), self.timezone_name)
        logger.info(f"Checking for reminders between {start.isoformat()} and {end.isoformat()} ({self.timezone_name})")

        sent = 0
        for kind, field in REMINDER_KINDS.items():
            try:
                customers = await self.gateway.find_customers_by_date(field, start, end)
            except Exception:
                logger.exception(f"❌ Failed to load {kind} reminders")
                continue

            for customer in customers:
                message = await self.notifier.send_reminder(customer.phone, customer.name, kind, getattr(customer, field))
                if message is None:
                    logger.warning(f"⚠️ Reminder to customer {customer.id} for {kind} not delivered")
                    continue
                sent += 1
                logger.info(f"Reminder sent to customer {customer.id} for {kind}")
                await self._record(customer, kind, message)

        logger.info(f"Reminder pass complete: {sent} sent")
        return sent

    async def _record(self, customer: Customer, kind: str, message: str) -> None:
        """Keep the sent reminder under the customer. The SMS already went out, so a failure here is logged only."""
        try:
            await self.gateway.record_notification(Notification(
                customer_id=customer.id,
                type="reminder",
                sub_type=kind,
                message=message,
                status="sent",
            ))
        except Exception:
            logger.exception(f"❌ Failed to record {kind} reminder for customer {customer.id}")
