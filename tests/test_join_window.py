from datetime import datetime, timedelta, timezone

import pytest

from mentorbot.app.schemas.bookings import Booking
from mentorbot.app.services.meetings.join_window import (
    ROLE_MENTOR,
    ROLE_USER,
    JoinState,
    can_join,
    check_join,
    format_minutes,
    format_time_until,
    role_for,
)

START = datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)


def _meeting(status="Scheduled") -> Booking:
    return Booking.model_validate({
        "_id": "mt1",
        "mentor": {"_id": "mentor-7", "name": "Asha Rao"},
        "user": {"_id": "user-3", "name": "Ravi"},
        "scheduledAt": "2026-11-02T10:00:00Z",
        "meetingType": "video",
        "status": status,
    })


@pytest.mark.parametrize("offset, expected", [(-6, False), (-5, True), (0, True), (15, True), (16, False)])
def test_user_window(offset, expected):
    assert can_join(START + timedelta(minutes=offset), START, ROLE_USER) is expected


@pytest.mark.parametrize("offset, expected", [(-16, False), (-15, True), (30, True), (31, False)])
def test_mentor_window(offset, expected):
    assert can_join(START + timedelta(minutes=offset), START, ROLE_MENTOR) is expected


def test_scheduled_at_without_offset_is_utc():
    meeting = Booking.model_validate({
        "_id": "mt2",
        "mentor": {"name": "Asha Rao"},
        "scheduledAt": "2026-11-02T10:00:00",
    })
    assert meeting.scheduled_at == START


def test_check_join_before_window_reports_wait():
    check = check_join(START - timedelta(minutes=65, seconds=30), _meeting(), ROLE_USER)

    assert check.state == JoinState.NOT_YET
    assert not check.allowed
    # opens at 09:55, 60.5 minutes away → rounds up
    assert check.minutes_until == 61
    assert check.time_until == "1h 1m"


def test_check_join_open_and_expired():
    assert check_join(START, _meeting(), ROLE_USER).allowed
    assert check_join(START + timedelta(minutes=20), _meeting(), ROLE_USER).state == JoinState.EXPIRED
    assert check_join(START + timedelta(minutes=20), _meeting(), ROLE_MENTOR).allowed


@pytest.mark.parametrize("status, state", [("Cancelled", JoinState.CANCELLED), ("Completed", JoinState.COMPLETED)])
def test_closed_meetings_never_join(status, state):
    check = check_join(START, _meeting(status), ROLE_MENTOR)
    assert check.state == state
    assert not check.allowed


def test_role_for_matches_mentor_id():
    meeting = _meeting()
    assert role_for("mentor-7", meeting) == ROLE_MENTOR
    assert role_for("user-3", meeting) == ROLE_USER
    assert role_for(None, meeting) == ROLE_USER


@pytest.mark.parametrize("minutes, text", [
    (45, "45 min"),
    (60, "1h"),
    (125, "2h 5m"),
    (1560, "1d 2h"),
    (2880, "2d"),
])
def test_format_minutes(minutes, text):
    assert format_minutes(minutes) == text


def test_format_time_until_rounds_up():
    assert format_time_until(timedelta(minutes=44, seconds=1)) == "45 min"
