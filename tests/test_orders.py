from datetime import datetime, timedelta, timezone

import pytest

from mentorbot.app.schemas.bookings import Booking
from mentorbot.app.services.orders import (
    filter_bookings,
    format_amount,
    format_price,
    format_when,
    split_mentor_sessions,
    status_label,
    validate_cancel_reason,
)

NOW = datetime(2026, 11, 2, 12, 0, tzinfo=timezone.utc)


def _booking(bid: str, hours: int, status: str = "Scheduled") -> Booking:
    return Booking(
        id=bid,
        mentor={"name": "Asha Rao"},
        scheduled_at=NOW + timedelta(hours=hours),
        status=status,
    )


BOOKINGS = [
    _booking("past-1", -48, "Completed"),
    _booking("soon", 2),
    _booking("past-2", -3, "Completed"),
    _booking("later", 30),
    _booking("gone", 5, "Cancelled"),
]


def test_filter_modes():
    assert [b.id for b in filter_bookings(BOOKINGS, "upcoming", NOW)] == ["soon", "later", "gone"]
    assert [b.id for b in filter_bookings(BOOKINGS, "past", NOW)] == ["past-1", "past-2"]
    assert len(filter_bookings(BOOKINGS, "all", NOW)) == len(BOOKINGS)


def test_split_mentor_sessions_orders_columns():
    upcoming, completed = split_mentor_sessions(BOOKINGS, NOW)

    assert [b.id for b in upcoming] == ["soon", "later"]
    assert [b.id for b in completed] == ["past-2", "past-1"]


def test_status_labels_fall_back_to_scheduled():
    assert status_label("No-Show") == "No-Show"
    assert status_label("Cancelled") == "Cancelled"
    assert status_label("Unexpected") == "Scheduled"


def test_amounts():
    assert format_amount(123450) == "₹1234.50"
    assert format_amount(500, "USD") == "$5.00"
    assert format_price(200.0) == "₹200"
    assert format_price(62.5) == "₹62.50"


def test_format_when_uses_display_zone():
    assert format_when(NOW, "Asia/Kolkata") == "02.11 17:30"
    assert format_when(NOW) == "02.11 12:00"


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_cancel_reason_required(reason):
    with pytest.raises(ValueError):
        validate_cancel_reason(reason)


def test_cancel_reason_trimmed():
    assert validate_cancel_reason("  Travelling  ") == "Travelling"
