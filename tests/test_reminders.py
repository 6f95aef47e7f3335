from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from tailor_ops.models import Customer
from tailor_ops.services.reminder_service import ReminderService, tomorrow_window


class TestTomorrowWindow:
    def test_utc(self):
        start, end = tomorrow_window(datetime(2025, 11, 24, 18, 0, tzinfo=timezone.utc), "UTC")
        assert start == datetime(2025, 11, 25, tzinfo=timezone.utc)
        assert end == datetime(2025, 11, 25, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_local_timezone(self):
        # 02:00 UTC on the 25th is still the evening of the 24th in New York
        start, end = tomorrow_window(datetime(2025, 11, 25, 2, 0, tzinfo=timezone.utc), "America/New_York")
        assert start == datetime(2025, 11, 25, 5, 0, tzinfo=timezone.utc)
        assert end.date() == datetime(2025, 11, 26).date()


class TestReminderService:
    """Unit tests for the daily reminder pass"""

    @pytest.mark.asyncio
    async def test_sends_pickup_and_fitting_reminders(self, gateway, notifier, sms):
        tomorrow = datetime(2025, 11, 25, 15, 0, tzinfo=timezone.utc)
        later = datetime(2025, 11, 28, 15, 0, tzinfo=timezone.utc)
        await gateway.create_customer(Customer(name="Ada", phone="5550100", pickup_date=tomorrow))
        await gateway.create_customer(Customer(name="Grace", phone="5550101", fitting_date=tomorrow))
        await gateway.create_customer(Customer(name="Alan", phone="5550102", pickup_date=later))

        service = ReminderService(gateway, notifier)
        sent = await service.send_due_reminders(now=datetime(2025, 11, 24, 9, 0, tzinfo=timezone.utc))

        assert sent == 2
        bodies = {call.args[0]: call.args[1] for call in sms.send_sms.await_args_list}
        assert set(bodies) == {"5550100", "5550101"}
        assert "your pickup scheduled on Tue Nov 25 2025" in bodies["5550100"]
        assert "your fitting scheduled on Tue Nov 25 2025" in bodies["5550101"]

    @pytest.mark.asyncio
    async def test_failed_delivery_is_not_counted(self, gateway, notifier, sms):
        await gateway.create_customer(Customer(
            name="Ada", phone="5550100", pickup_date=datetime(2025, 11, 25, 15, tzinfo=timezone.utc)
        ))
        sms.send_sms.side_effect = RuntimeError("carrier down")

        sent = await ReminderService(gateway, notifier).send_due_reminders(
            now=datetime(2025, 11, 24, 9, 0, tzinfo=timezone.utc)
        )

        assert sent == 0

    @pytest.mark.asyncio
    async def test_nothing_due(self, gateway, notifier, sms):
        await gateway.create_customer(Customer(name="Ada", phone="5550100", balance=Decimal("10")))

        assert await ReminderService(gateway, notifier).send_due_reminders() == 0
        sms.send_sms.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sent_reminders_are_recorded(self, gateway, notifier):
        tomorrow = datetime(2025, 11, 25, 15, 0, tzinfo=timezone.utc)
        customer = await gateway.create_customer(Customer(
            name="Ada", phone="5550100", pickup_date=tomorrow, fitting_date=tomorrow
        ))

        await ReminderService(gateway, notifier).send_due_reminders(
            now=datetime(2025, 11, 24, 9, 0, tzinfo=timezone.utc)
        )

        records = await gateway.list_notifications(customer.id)
        assert sorted(n.sub_type for n in records) == ["fitting", "pickup"]
        for record in records:
            assert record.type == "reminder"
            assert record.status == "sent"
            assert record.sent_at is not None
            assert record.message == (
                f"Hello Ada, this is a reminder for your {record.sub_type} scheduled on Tue Nov 25 2025."
            )

    @pytest.mark.asyncio
    async def test_undelivered_reminder_is_not_recorded(self, gateway, notifier, sms):
        customer = await gateway.create_customer(Customer(
            name="Ada", phone="5550100", pickup_date=datetime(2025, 11, 25, 15, tzinfo=timezone.utc)
        ))
        sms.send_sms.side_effect = RuntimeError("carrier down")

        await ReminderService(gateway, notifier).send_due_reminders(
            now=datetime(2025, 11, 24, 9, 0, tzinfo=timezone.utc)
        )

        assert await gateway.list_notifications(customer.id) == []

    @pytest.mark.asyncio
    async def test_recording_failure_still_counts_sent(self, gateway, notifier, sms):
        await gateway.create_customer(Customer(
            name="Ada", phone="5550100", pickup_date=datetime(2025, 11, 25, 15, tzinfo=timezone.utc)
        ))
        gateway.record_notification = AsyncMock(side_effect=RuntimeError("disk full"))

        sent = await ReminderService(gateway, notifier).send_due_reminders(
            now=datetime(2025, 11, 24, 9, 0, tzinfo=timezone.utc)
        )

        assert sent == 1
        sms.send_sms.assert_awaited_once()
