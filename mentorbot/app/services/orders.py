# mentorbot/app/services/orders.py
"""
Read-only views over booking / meeting records.

Records are never mutated here; changes come from a re-fetch.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

from mentorbot.app.schemas.bookings import Booking, MeetingStatus

FILTER_ALL = "all"
FILTER_UPCOMING = "upcoming"
FILTER_PAST = "past"
FILTERS = (FILTER_ALL, FILTER_UPCOMING, FILTER_PAST)

STATUS_LABELS = {
    MeetingStatus.SCHEDULED.value: "Scheduled",
    MeetingStatus.IN_PROGRESS.value: "In progress",
    MeetingStatus.COMPLETED.value: "Completed",
    MeetingStatus.CANCELLED.value: "Cancelled",
    MeetingStatus.NO_SHOW.value: "No-Show",
}

STATUS_EMOJI = {
    MeetingStatus.SCHEDULED.value: "📅",
    MeetingStatus.IN_PROGRESS.value: "🟢",
    MeetingStatus.COMPLETED.value: "✅",
    MeetingStatus.CANCELLED.value: "❌",
    MeetingStatus.NO_SHOW.value: "⚠️",
}

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€"}


def filter_bookings(bookings: list[Booking], mode: str, now: datetime) -> list[Booking]:
    if mode == FILTER_UPCOMING:
        return [b for b in bookings if b.scheduled_at >= now]
    if mode == FILTER_PAST:
        return [b for b in bookings if b.scheduled_at < now]
    return list(bookings)


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, STATUS_LABELS[MeetingStatus.SCHEDULED.value])


def status_emoji(status: str) -> str:
    return STATUS_EMOJI.get(status, STATUS_EMOJI[MeetingStatus.SCHEDULED.value])


def format_amount(minor_units: int, currency: str = "INR") -> str:
    """Order amounts come in minor units (paise): 123450 → ₹1234.50"""
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    return f"{symbol}{minor_units / 100:.2f}"


def format_price(amount: float, currency: str = "INR") -> str:
    """Computed prices are in major units: 200 → ₹200"""
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    if amount == int(amount):
        return f"{symbol}{int(amount)}"
    return f"{symbol}{amount:.2f}"


def split_mentor_sessions(bookings: list[Booking], now: datetime) -> tuple[list[Booking], list[Booking]]:
    """
    Mentor dashboard columns.

    Returns:
        (upcoming: scheduled in the future, soonest first,
         completed: most recent first)
    """
    upcoming = sorted(
        (b for b in bookings if b.status == MeetingStatus.SCHEDULED.value and b.scheduled_at >= now),
        key=lambda b: b.scheduled_at,
    )
    completed = sorted(
        (b for b in bookings if b.status == MeetingStatus.COMPLETED.value),
        key=lambda b: b.scheduled_at,
        reverse=True,
    )
    return upcoming, completed


def validate_cancel_reason(reason: str | None) -> str:
    """Organizer cancellation needs a reason; checked before any network call."""
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValueError("cancellation reason is required")
    return cleaned


def format_when(moment: datetime, tz_name: str = "UTC") -> str:
    """20.10 14:30 in the display zone."""
    return moment.astimezone(ZoneInfo(tz_name)).strftime("%d.%m %H:%M")
