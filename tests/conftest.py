from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from tailor_ops.adapters.realtime import RealtimePublisher
from tailor_ops.adapters.sms import NotificationDispatcher, SMSAdapter
from tailor_ops.services.memory_gateway import InMemoryGateway


class TickingClock:
    """Returns a strictly increasing time on every call"""

    def __init__(self, start: datetime = datetime(2025, 11, 23, 2, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def gateway(clock):
    return InMemoryGateway(retry_delay=0, clock=clock)


@pytest.fixture
def sms():
    adapter = Mock(spec=SMSAdapter)
    adapter.send_sms = AsyncMock(return_value={"success": True})
    return adapter


@pytest.fixture
def notifier(sms):
    return NotificationDispatcher(sms)


@pytest.fixture
def publisher():
    return AsyncMock(spec=RealtimePublisher)
