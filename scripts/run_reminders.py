#!/usr/bin/env python3
"""
Run one pass of pickup/fitting reminders (schedule with cron, e.g. daily at 06:00)
"""

import sys
import asyncio
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv
load_dotenv(project_root / ".env")

from tailor_ops.adapters.sms import NotificationDispatcher, SMSAdapter
from tailor_ops.config import get_settings
from tailor_ops.logging_conf import configure_logging
from tailor_ops.services import create_gateway
from tailor_ops.services.reminder_service import ReminderService


async def run() -> int:
    settings = get_settings()
    gateway = await create_gateway(settings)
    try:
        notifier = NotificationDispatcher(SMSAdapter(settings), settings.TIMEZONE)
        service = ReminderService(gateway, notifier, settings.TIMEZONE)
        return await service.send_due_reminders()
    finally:
        await gateway.close()


def main():
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    sent = asyncio.run(run())
    print(f"✅ {sent} reminders sent")


if __name__ == "__main__":
    main()
