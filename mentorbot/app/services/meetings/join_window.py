# mentorbot/app/services/meetings/join_window.py
"""
Join-window gate for meetings.

Window around the scheduled start, by role:
- mentor (organizer): 15 min before → 30 min after
- user (participant):  5 min before → 15 min after

Client-side convenience only; the backend re-validates on join.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from mentorbot.app.schemas.bookings import Booking, MeetingStatus

ROLE_MENTOR = "mentor"
ROLE_USER = "user"

# role → (minutes before, minutes after)
JOIN_WINDOWS: dict[str, tuple[int, int]] = {
    ROLE_MENTOR: (15, 30),
    ROLE_USER: (5, 15),
}


class JoinState(str, Enum):
    OPEN = "open"
    NOT_YET = "not_yet"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass(frozen=True)
class JoinWindow:
    scheduled_at: datetime
    opens_at: datetime
    closes_at: datetime
    role: str

    @property
    def is_organizer(self) -> bool:
        return self.role == ROLE_MENTOR

    def contains(self, now: datetime) -> bool:
        return self.opens_at <= now <= self.closes_at


@dataclass(frozen=True)
class JoinCheck:
    state: JoinState
    window: JoinWindow
    minutes_until: int = 0

    @property
    def allowed(self) -> bool:
        return self.state == JoinState.OPEN

    @property
    def time_until(self) -> str:
        return format_minutes(self.minutes_until)


def join_window(scheduled_at: datetime, role: str) -> JoinWindow:
    before, after = JOIN_WINDOWS.get(role, JOIN_WINDOWS[ROLE_USER])
    return JoinWindow(
        scheduled_at=scheduled_at,
        opens_at=scheduled_at - timedelta(minutes=before),
        closes_at=scheduled_at + timedelta(minutes=after),
        role=role,
    )


def can_join(now: datetime, scheduled_at: datetime, role: str) -> bool:
    """now ∈ [scheduled_at − before(role), scheduled_at + after(role)]"""
    return join_window(scheduled_at, role).contains(now)


def check_join(now: datetime, meeting: Booking, role: str) -> JoinCheck:
    """Full gate: meeting status first, then the time window."""
    window = join_window(meeting.scheduled_at, role)

    if meeting.status == MeetingStatus.CANCELLED.value:
        return JoinCheck(JoinState.CANCELLED, window)
    if meeting.status == MeetingStatus.COMPLETED.value:
        return JoinCheck(JoinState.COMPLETED, window)

    if now < window.opens_at:
        return JoinCheck(JoinState.NOT_YET, window, minutes_until=ceil_minutes(window.opens_at - now))
    if now > window.closes_at:
        return JoinCheck(JoinState.EXPIRED, window)
    return JoinCheck(JoinState.OPEN, window)


def role_for(user_id: Optional[str], meeting: Booking) -> str:
    """Organizer when the caller is the meeting's mentor."""
    if user_id and meeting.mentor.id and str(meeting.mentor.id) == str(user_id):
        return ROLE_MENTOR
    return ROLE_USER


def ceil_minutes(delta: timedelta) -> int:
    return math.ceil(delta.total_seconds() / 60)


def format_minutes(minutes: int) -> str:
    """
    45 → "45 min", 125 → "2h 5m", 180 → "3h", 1560 → "1d 2h", 2880 → "2d".
    """
    if minutes < 60:
        return f"{minutes} min"

    hours, rest = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {rest}m" if rest else f"{hours}h"

    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h" if hours else f"{days}d"


def format_time_until(delta: timedelta) -> str:
    return format_minutes(ceil_minutes(delta))
