# mentorbot/app/schemas/slots.py
"""
Pydantic schemas for mentor calendar slots.

Times are local wall-clock values ("HH:MM"), no timezone encoded.
"""

from datetime import date, time
from typing import Optional

from pydantic import BaseModel, Field


class InvalidSlotError(ValueError):
    """Slot whose end time precedes its start time."""


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


class TimeSlot(BaseModel):
    """A single bookable time range on one date."""
    start_time: time = Field(alias="startTime")
    end_time: time = Field(alias="endTime")
    available: bool = True

    model_config = {"populate_by_name": True, "frozen": True}

    @property
    def key(self) -> tuple[time, time]:
        return self.start_time, self.end_time

    def duration_minutes(self) -> int:
        """End minus start in whole minutes; malformed ranges are rejected."""
        duration = _minutes(self.end_time) - _minutes(self.start_time)
        if duration < 0:
            raise InvalidSlotError(
                f"slot ends before it starts: {self.label()}"
            )
        return duration

    def label(self) -> str:
        return f"{self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')}"


class CalendarSlotDay(BaseModel):
    """One day of a mentor's calendar with per-range availability."""
    date: date
    day_of_week: Optional[str] = Field(default=None, alias="dayOfWeek")
    available_slots: list[TimeSlot] = Field(default_factory=list, alias="availableSlots")
    is_blocked: bool = Field(default=False, alias="isBlocked")

    model_config = {"populate_by_name": True}

    @property
    def open_slots(self) -> list[TimeSlot]:
        return [s for s in self.available_slots if s.available]


class TimeRange(BaseModel):
    """Weekly availability range (no availability flag)."""
    start_time: time = Field(alias="startTime")
    end_time: time = Field(alias="endTime")

    model_config = {"populate_by_name": True}


class AvailabilityDay(BaseModel):
    """Weekday entry of a mentor's weekly schedule."""
    day: str
    slots: list[TimeRange] = Field(default_factory=list)

    model_config = {"populate_by_name": True}
