# mentorbot/app/services/booking/selection.py
"""
Slot selection and duration/price calculation.

Pure, local logic: no network, no settings.

Contains:
✓ which calendar dates are bookable
✓ per-date slot selection (toggle, cleared on date switch)
✓ total duration and price (ceil to 15-minute blocks)
✓ submit readiness

Does NOT contain:
✗ slot reservation (backend, on booking creation)
✗ payment (see payment_flow)
"""

import math
from dataclasses import dataclass, field
from datetime import date, time
from typing import Iterable, Optional

from mentorbot.app.schemas.bookings import SessionType
from mentorbot.app.schemas.slots import CalendarSlotDay, InvalidSlotError, TimeSlot

BLOCK_MINUTES = 15


def list_available_dates(calendar_slots: Iterable[CalendarSlotDay]) -> list[date]:
    """Dates that are not blocked and have at least one open slot, oldest first."""
    return sorted(
        day.date
        for day in calendar_slots
        if not day.is_blocked and any(s.available for s in day.available_slots)
    )


def compute_total_duration_minutes(slots: Iterable[TimeSlot]) -> int:
    """
    Sum of (end - start) over the slots.

    Raises:
        InvalidSlotError: a slot ends before it starts.
    """
    return sum(slot.duration_minutes() for slot in slots)


def compute_price(
    total_minutes: int,
    mode: str,
    pricing_table: dict[str, float],
) -> Optional[float]:
    """
    Price of a selection in the mentor's currency.

    Returns None when the mentor has no price for ``mode``.
    A partial block bills as a full one: 20 minutes = 2 blocks.
    """
    price_per_block = pricing_table.get(mode)
    if price_per_block is None:
        return None

    blocks = math.ceil(total_minutes / BLOCK_MINUTES)
    return blocks * price_per_block


@dataclass
class SlotSelection:
    """Caller's picks for one date. Discarded after submission or navigation."""
    selected_date: Optional[date] = None
    mode: str = SessionType.VIDEO.value
    topic: str = ""
    _slots: dict[tuple[time, time], TimeSlot] = field(default_factory=dict)

    @property
    def selected_slots(self) -> list[TimeSlot]:
        return list(self._slots.values())

    def select_date(self, day: date) -> None:
        """Switch date; picks from the previous date are dropped."""
        self.selected_date = day
        self._slots.clear()

    def toggle_slot(self, slot: TimeSlot) -> bool:
        """
        Add or remove ``slot`` by its (start, end) identity.

        Returns False (selection unchanged) for booked or malformed slots.
        """
        if not slot.available:
            return False
        try:
            slot.duration_minutes()
        except InvalidSlotError:
            return False

        if slot.key in self._slots:
            del self._slots[slot.key]
        else:
            self._slots[slot.key] = slot
        return True

    def is_selected(self, slot: TimeSlot) -> bool:
        return slot.key in self._slots

    def set_mode(self, mode: str) -> None:
        self.mode = mode

    def set_topic(self, topic: str) -> None:
        self.topic = topic

    def clear_slots(self) -> None:
        self._slots.clear()

    def clear(self) -> None:
        self.selected_date = None
        self.topic = ""
        self._slots.clear()

    def to_booking_slots(self) -> list[dict]:
        """Payload entries for booking creation."""
        day = self.selected_date.isoformat() if self.selected_date else None
        return [
            {
                "date": day,
                "startTime": slot.start_time.strftime("%H:%M"),
                "endTime": slot.end_time.strftime("%H:%M"),
                "sessionType": self.mode,
            }
            for slot in self.selected_slots
        ]

    # State persistence (FSM data is plain JSON)

    def to_dict(self) -> dict:
        return {
            "selected_date": self.selected_date.isoformat() if self.selected_date else None,
            "mode": self.mode,
            "topic": self.topic,
            "slots": [s.model_dump(mode="json", by_alias=True) for s in self.selected_slots],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "SlotSelection":
        data = data or {}
        raw_date = data.get("selected_date")
        selection = cls(
            selected_date=date.fromisoformat(raw_date) if raw_date else None,
            mode=data.get("mode") or SessionType.VIDEO.value,
            topic=data.get("topic") or "",
        )
        for raw in data.get("slots") or []:
            slot = TimeSlot.model_validate(raw)
            selection._slots[slot.key] = slot
        return selection


@dataclass(frozen=True)
class SelectionSummary:
    total_minutes: int
    blocks: int
    price: Optional[float]


def summarize(selection: SlotSelection, pricing_table: dict[str, float]) -> Optional[SelectionSummary]:
    """Duration/price snapshot for display; None when a slot is malformed."""
    try:
        total = compute_total_duration_minutes(selection.selected_slots)
    except InvalidSlotError:
        return None
    return SelectionSummary(
        total_minutes=total,
        blocks=math.ceil(total / BLOCK_MINUTES),
        price=compute_price(total, selection.mode, pricing_table),
    )


def can_submit(
    selection: SlotSelection,
    pricing_table: dict[str, float],
    checkout_ready: bool,
) -> bool:
    """Submit gate. Degrades to False, never raises."""
    if selection.selected_date is None or not selection.selected_slots:
        return False
    if not selection.topic.strip():
        return False
    if not checkout_ready:
        return False

    summary = summarize(selection, pricing_table)
    if summary is None or summary.total_minutes <= 0:
        return False
    return summary.price is not None
