"""Pytest bootstrap and shared fakes."""

from datetime import date, time
from pathlib import Path
import sys

import pytest

# Ensure project root is on sys.path so `import mentorbot` works without install
PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

from mentorbot.app.i18n.loader import load_messages  # noqa: E402
from mentorbot.app.schemas.bookings import PaymentOrder  # noqa: E402
from mentorbot.app.schemas.slots import TimeSlot  # noqa: E402
from mentorbot.app.services.booking import SlotSelection  # noqa: E402
from mentorbot.app.utils.api import ApiError  # noqa: E402

load_messages()


def make_slot(start: str, end: str, available: bool = True) -> TimeSlot:
    sh, sm = map(int, start.split(":"))
    eh, em = map(int, end.split(":"))
    return TimeSlot(start_time=time(sh, sm), end_time=time(eh, em), available=available)


class FakeBookingApi:
    """Records calls; raises the configured ApiError per endpoint."""

    def __init__(self, create_error=None, verify_error=None, cancel_error=None):
        self.create_error = create_error
        self.verify_error = verify_error
        self.cancel_error = cancel_error
        self.calls = []

    async def create_booking(self, mentor_id, slots):
        self.calls.append(("create", mentor_id, slots))
        if self.create_error:
            raise self.create_error
        return PaymentOrder(
            order_id="ord_1",
            provider_order_id="order_rp_1",
            provider_key="rzp_test",
            amount=20000,
            mentor_name="Asha Rao",
        )

    async def verify_payment(self, payment):
        self.calls.append(("verify", payment.to_api()))
        if self.verify_error:
            raise self.verify_error
        return {"success": True}

    async def cancel_booking(self, order_id):
        self.calls.append(("cancel", order_id))
        if self.cancel_error:
            raise self.cancel_error
        return {"success": True}


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttl = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttl[key] = ttl

    async def delete(self, key):
        self.store.pop(key, None)
        self.ttl.pop(key, None)


@pytest.fixture
def ready_selection():
    """22 minutes on one date, video, with a topic."""
    selection = SlotSelection()
    selection.select_date(date(2026, 11, 2))
    selection.toggle_slot(make_slot("10:00", "10:22"))
    selection.set_topic("GST filing for a small business")
    return selection


@pytest.fixture
def pricing():
    return {"video": 100.0, "chat": 50.0}


@pytest.fixture
def api_error():
    def _make(message="Slot already booked", status=409):
        return ApiError(message, status=status)
    return _make
