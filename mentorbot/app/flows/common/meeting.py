# mentorbot/app/flows/common/meeting.py
"""
Meeting screen for both sides of a booking.

- join gate by role (mentor 15/30 min, user 5/15 min around the start)
- join / leave events reported to the backend
- countdown with a 2-minute warning and a time-up notice

The media session itself is out of scope: the bot shows the room id
from the join credentials.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from aiogram import Bot, F, Router
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup

from mentorbot.app.config import settings
from mentorbot.app.i18n.loader import t
from mentorbot.app.schemas.bookings import Booking
from mentorbot.app.services.meetings.join_window import (
    ROLE_MENTOR,
    JoinCheck,
    JoinState,
    check_join,
    role_for,
)
from mentorbot.app.services.meetings.timer import MeetingTimer
from mentorbot.app.services.orders import format_when, status_label
from mentorbot.app.utils.api import ApiClient, ApiError
from mentorbot.app.utils.session import SessionStore

logger = logging.getLogger(__name__)

# (chat_id, meeting_id) → running countdown
_timers: dict[tuple[int, str], MeetingTimer] = {}

GATE_KEYS = {
    JoinState.EXPIRED: "meeting:expired",
    JoinState.CANCELLED: "meeting:cancelled",
    JoinState.COMPLETED: "meeting:completed",
}


def gate_text(check: JoinCheck, lang: str) -> Optional[str]:
    """Why joining is not possible right now; None when it is."""
    if check.allowed:
        return None
    if check.state == JoinState.NOT_YET:
        return t("meeting:not_yet", lang, check.time_until)
    return t(GATE_KEYS[check.state], lang)


def counterpart_name(meeting: Booking, role: str) -> str:
    if role == ROLE_MENTOR:
        return meeting.user.name if meeting.user else ""
    return meeting.mentor.name


def meeting_inline(meeting_id: str, check: JoinCheck, lang: str) -> Optional[InlineKeyboardMarkup]:
    if not check.allowed:
        return None
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=t("meeting:join", lang), callback_data=f"meet:join:{meeting_id}")],
    ])


def in_meeting_inline(meeting_id: str, is_organizer: bool, lang: str) -> InlineKeyboardMarkup:
    row = [InlineKeyboardButton(text=t("meeting:leave", lang), callback_data=f"meet:leave:{meeting_id}")]
    if is_organizer:
        row.append(InlineKeyboardButton(text=t("meeting:end", lang), callback_data=f"meet:end:{meeting_id}"))
    return InlineKeyboardMarkup(inline_keyboard=[row])


async def stop_timer(chat_id: int, meeting_id: str) -> None:
    timer = _timers.pop((chat_id, meeting_id), None)
    if timer is not None:
        await timer.stop()


async def stop_all_timers() -> None:
    """Shutdown hook: cancel every running countdown."""
    for key in list(_timers):
        await stop_timer(*key)


def start_timer(bot: Bot, chat_id: int, meeting: Booking, client: ApiClient, lang: str) -> MeetingTimer:
    key = (chat_id, meeting.id)

    async def on_warning():
        await bot.send_message(chat_id, t("meeting:warning", lang))

    async def on_time_up():
        _timers.pop(key, None)
        await bot.send_message(chat_id, t("meeting:time_up", lang))
        try:
            await client.record_leave_event(meeting.id)
        except ApiError as e:
            logger.warning(f"[MEETING] Leave event failed for {meeting.id}: {e.message}")

    timer = MeetingTimer(
        scheduled_at=meeting.scheduled_at,
        duration_minutes=settings.MEETING_DURATION_MINUTES,
        on_warning=on_warning,
        on_time_up=on_time_up,
    )
    _timers[key] = timer
    timer.start()
    return timer


def setup() -> Router:
    router = Router(name="meeting")

    async def load_meeting(callback: CallbackQuery, sessions: SessionStore):
        """(session, meeting, role) or None after telling the caller why."""
        session = await sessions.load(callback.from_user.id)
        if not session.is_logged_in:
            await callback.answer(t("auth:required", session.lang), show_alert=True)
            return None

        meeting_id = callback.data.split(":", 2)[-1]
        try:
            meeting = await session.api().get_meeting(meeting_id)
        except ApiError as e:
            await callback.answer(t("common:error", session.lang, e.message), show_alert=True)
            return None

        return session, meeting, role_for(session.user_id, meeting)

    @router.callback_query(F.data.startswith("meet:open:"))
    async def handle_open(callback: CallbackQuery, sessions: SessionStore):
        loaded = await load_meeting(callback, sessions)
        if loaded is None:
            return
        session, meeting, role = loaded
        lang = session.lang

        check = check_join(datetime.now(timezone.utc), meeting, role)
        text = t(
            "meeting:title",
            lang,
            counterpart_name(meeting, role),
            format_when(meeting.scheduled_at, settings.DISPLAY_TIMEZONE),
            status_label(meeting.status),
        )
        reason = gate_text(check, lang)
        if reason:
            text += "\n\n" + reason

        await callback.message.answer(text, reply_markup=meeting_inline(meeting.id, check, lang))
        await callback.answer()

    @router.callback_query(F.data.startswith("meet:join:"))
    async def handle_join(callback: CallbackQuery, sessions: SessionStore):
        loaded = await load_meeting(callback, sessions)
        if loaded is None:
            return
        session, meeting, role = loaded
        lang = session.lang
        chat_id = callback.message.chat.id

        check = check_join(datetime.now(timezone.utc), meeting, role)
        if not check.allowed:
            await callback.answer(gate_text(check, lang), show_alert=True)
            return

        client = session.api()
        try:
            result = await client.get_join_credentials(meeting.id)
            await client.record_join_event(meeting.id)
        except ApiError as e:
            await callback.answer(t("meeting:join_failed", lang, e.message), show_alert=True)
            return

        logger.info(f"[MEETING] tg_id={session.tg_id} joined {meeting.id} as {role}")

        await stop_timer(chat_id, meeting.id)
        timer = start_timer(callback.bot, chat_id, meeting, client, lang)
        await timer.tick()

        text = t("meeting:joined", lang, timer.remaining_display())
        room_id = (result.get("credentials") or {}).get("roomId")
        if room_id:
            text += "\n" + t("meeting:room", lang, room_id)

        await callback.message.edit_text(
            text,
            reply_markup=in_meeting_inline(meeting.id, check.window.is_organizer, lang),
        )
        await callback.answer()

    @router.callback_query(F.data.startswith("meet:leave:"))
    async def handle_leave(callback: CallbackQuery, sessions: SessionStore):
        session = await sessions.load(callback.from_user.id)
        meeting_id = callback.data.split(":", 2)[-1]

        await stop_timer(callback.message.chat.id, meeting_id)
        try:
            await session.api().record_leave_event(meeting_id)
        except ApiError as e:
            logger.warning(f"[MEETING] Leave event failed for {meeting_id}: {e.message}")

        await callback.message.edit_text(t("meeting:left", session.lang))
        await callback.answer()

    @router.callback_query(F.data.startswith("meet:end:"))
    async def handle_end(callback: CallbackQuery, sessions: SessionStore):
        session = await sessions.load(callback.from_user.id)
        meeting_id = callback.data.split(":", 2)[-1]

        try:
            await session.api().end_meeting(meeting_id)
        except ApiError as e:
            await callback.answer(t("common:error", session.lang, e.message), show_alert=True)
            return

        await stop_timer(callback.message.chat.id, meeting_id)
        logger.info(f"[MEETING] {meeting_id} ended by tg_id={session.tg_id}")
        await callback.message.edit_text(t("meeting:ended", session.lang))
        await callback.answer()

    return router
