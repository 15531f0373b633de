# mentorbot/app/flows/mentor/sessions.py
"""
Mentor dashboard in the chat.

- upcoming sessions (soonest first) with open / cancel buttons
- cancel requires a reason (checked before the API call, backend refunds)
- pricing update per session type, price per 15 minutes
- weekly availability, one line per weekday
"""

import logging
import re
from datetime import datetime, timezone

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from mentorbot.app.config import settings
from mentorbot.app.i18n.loader import DEFAULT_LANG, t, t_all
from mentorbot.app.schemas.bookings import Booking, SessionType
from mentorbot.app.services.orders import format_price, format_when, split_mentor_sessions, validate_cancel_reason
from mentorbot.app.utils.api import ApiError
from mentorbot.app.utils.pagination import build_nav_row, paginate
from mentorbot.app.utils.session import SessionContext, SessionStore

logger = logging.getLogger(__name__)

PAGE_SIZE = 5
FETCH_LIMIT = 100

PRICE_RE = re.compile(r"^\s*(\w+)\s*[:=]?\s*(\d+(?:\.\d+)?)\s*$")
RANGE_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

# chat_id → {"upcoming": [...], "completed": int, "lang": str}
_context: dict[int, dict] = {}


class MentorCancel(StatesGroup):
    reason = State()


class MentorPricing(StatesGroup):
    prices = State()


class MentorAvailability(StatesGroup):
    days = State()


def parse_pricing(text: str) -> list[dict]:
    """
    "video 100, chat 50" → [{"type": "video", "price": 100.0}, {"type": "chat", "price": 50.0}]

    Raises:
        ValueError: unknown session type or unreadable entry.
    """
    known = {s.value for s in SessionType}
    items = []
    for part in re.split(r"[,;\n]", text):
        if not part.strip():
            continue
        m = PRICE_RE.match(part)
        if not m:
            raise ValueError(f"cannot read price entry: {part.strip()}")
        session_type, price = m.group(1).lower(), float(m.group(2))
        if session_type not in known:
            raise ValueError(f"unknown session type: {session_type}")
        items.append({"type": session_type, "price": price})

    if not items:
        raise ValueError("no prices given")
    return items


def _parse_range(text: str) -> dict:
    m = RANGE_RE.match(text)
    if not m:
        raise ValueError(f"cannot read time range: {text.strip()}")
    sh, sm, eh, em = (int(g) for g in m.groups())
    if sh > 23 or eh > 23 or sm > 59 or em > 59:
        raise ValueError(f"time out of range: {text.strip()}")
    if (eh, em) <= (sh, sm):
        raise ValueError(f"range ends before it starts: {text.strip()}")
    return {"startTime": f"{sh:02d}:{sm:02d}", "endTime": f"{eh:02d}:{em:02d}"}


def parse_availability(text: str) -> list[dict]:
    """
    One weekday per line:

        Monday 10:00-12:00, 14:00-16:00
        Friday 09:00-11:30

    → [{"day": "Monday", "slots": [{"startTime": "10:00", "endTime": "12:00"}, ...]}, ...]

    Raises:
        ValueError: unknown or repeated weekday, unreadable range.
    """
    by_name = {d.lower(): d for d in WEEKDAYS}
    days: dict[str, list[dict]] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        name, _, ranges = line.strip().partition(" ")
        day = by_name.get(name.lower())
        if day is None:
            raise ValueError(f"unknown weekday: {name}")
        if day in days:
            raise ValueError(f"weekday given twice: {day}")
        slots = [_parse_range(part) for part in ranges.split(",") if part.strip()]
        if not slots:
            raise ValueError(f"no time ranges for {day}")
        days[day] = slots

    if not days:
        raise ValueError("no availability given")
    return [{"day": day, "slots": days[day]} for day in WEEKDAYS if day in days]


def format_availability(days: list[dict]) -> str:
    lines = []
    for entry in days:
        ranges = ", ".join(f"{s.get('startTime')}-{s.get('endTime')}" for s in entry.get("slots") or [])
        lines.append(f"{entry.get('day', '?')} {ranges}".rstrip())
    return "\n".join(lines) or "-"


def session_line(booking: Booking, lang: str) -> str:
    return t(
        "sessions:item",
        lang,
        format_when(booking.scheduled_at, settings.DISPLAY_TIMEZONE),
        booking.user.name if booking.user else "?",
        booking.meeting_type.value,
    )


def sessions_inline(upcoming: list[Booking], page: int, lang: str) -> InlineKeyboardMarkup:
    buttons: list[list[InlineKeyboardButton]] = []
    page_items, page, total_pages = paginate(upcoming, page, PAGE_SIZE)

    if not page_items:
        buttons.append([InlineKeyboardButton(text=t("sessions:empty", lang), callback_data="ses:noop")])

    for booking in page_items:
        buttons.append([InlineKeyboardButton(text=session_line(booking, lang), callback_data=f"meet:open:{booking.id}")])
        buttons.append([InlineKeyboardButton(
            text=t("sessions:cancel", lang, format_when(booking.scheduled_at, settings.DISPLAY_TIMEZONE)),
            callback_data=f"ses:cancel:{booking.id}",
        )])

    nav_row = build_nav_row(page, total_pages, "ses:page:{p}", "ses:noop", lang)
    if nav_row:
        buttons.append(nav_row)

    buttons.append([
        InlineKeyboardButton(text=t("sessions:pricing", lang), callback_data="ses:pricing"),
        InlineKeyboardButton(text=t("sessions:availability", lang), callback_data="ses:availability"),
    ])
    buttons.append([InlineKeyboardButton(text=t("common:hide", lang), callback_data="ses:hide")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def setup() -> Router:
    router = Router(name="mentor_sessions")

    async def require_mentor(tg_id: int, sessions: SessionStore) -> tuple[SessionContext, str | None]:
        session = await sessions.load(tg_id)
        if not session.is_logged_in:
            return session, t("auth:required", session.lang)
        if not session.is_mentor:
            return session, t("auth:mentor_only", session.lang)
        return session, None

    async def show_sessions(message: Message, session: SessionContext):
        lang = session.lang
        try:
            result = await session.api().get_mentor_meetings(limit=FETCH_LIMIT)
        except ApiError as e:
            await message.answer(t("sessions:load_failed", lang, e.message))
            return

        upcoming, completed = split_mentor_sessions(result.items, datetime.now(timezone.utc))
        _context[message.chat.id] = {"upcoming": upcoming, "completed": len(completed), "lang": lang}

        await message.answer(
            t("sessions:title", lang, len(upcoming), len(completed)),
            reply_markup=sessions_inline(upcoming, 0, lang),
        )

    @router.message(Command("sessions"))
    @router.message(F.text.in_(t_all("menu:sessions")))
    async def handle_entry(message: Message, state: FSMContext, sessions: SessionStore):
        await state.clear()
        session, error = await require_mentor(message.from_user.id, sessions)
        if error:
            await message.answer(error)
            return
        await show_sessions(message, session)

    @router.callback_query(F.data.startswith("ses:page:"))
    async def handle_page(callback: CallbackQuery):
        ctx = _context.get(callback.message.chat.id)
        if ctx is None:
            await callback.answer(t("common:expired", DEFAULT_LANG), show_alert=True)
            return

        page = int(callback.data.split(":")[-1])
        await callback.message.edit_reply_markup(reply_markup=sessions_inline(ctx["upcoming"], page, ctx["lang"]))
        await callback.answer()

    # ==========================================================
    # CANCEL WITH REASON
    # ==========================================================

    @router.callback_query(F.data.startswith("ses:cancel:"))
    async def handle_cancel_prompt(callback: CallbackQuery, state: FSMContext, sessions: SessionStore):
        session, error = await require_mentor(callback.from_user.id, sessions)
        if error:
            await callback.answer(error, show_alert=True)
            return

        meeting_id = callback.data.split(":", 2)[-1]
        ctx = _context.get(callback.message.chat.id, {})
        booking = next((b for b in ctx.get("upcoming", []) if b.id == meeting_id), None)
        when = format_when(booking.scheduled_at, settings.DISPLAY_TIMEZONE) if booking else meeting_id

        await state.set_state(MentorCancel.reason)
        await state.update_data(meeting_id=meeting_id, lang=session.lang)
        await callback.message.answer(t("sessions:reason_prompt", session.lang, when))
        await callback.answer()

    @router.message(MentorCancel.reason, F.text)
    async def handle_cancel_reason(message: Message, state: FSMContext, sessions: SessionStore):
        data = await state.get_data()
        lang = data.get("lang", DEFAULT_LANG)

        try:
            reason = validate_cancel_reason(message.text)
        except ValueError:
            await message.answer(t("sessions:reason_required", lang))
            return

        session = await sessions.load(message.from_user.id)
        meeting_id = data["meeting_id"]
        try:
            await session.api().cancel_mentor_meeting(meeting_id, reason)
        except ApiError as e:
            await state.clear()
            await message.answer(t("sessions:cancel_failed", lang, e.message))
            return

        await state.clear()
        logger.info(f"[SESSIONS] Meeting {meeting_id} cancelled by tg_id={session.tg_id}")
        await message.answer(t("sessions:cancelled", lang))
        await show_sessions(message, session)

    # ==========================================================
    # PRICING
    # ==========================================================

    @router.callback_query(F.data == "ses:pricing")
    async def handle_pricing_prompt(callback: CallbackQuery, state: FSMContext, sessions: SessionStore):
        session, error = await require_mentor(callback.from_user.id, sessions)
        if error:
            await callback.answer(error, show_alert=True)
            return

        lang = session.lang
        try:
            profile = await session.api().get_dashboard_profile()
        except ApiError as e:
            await callback.answer(t("common:error", lang, e.message), show_alert=True)
            return

        current = "\n".join(
            f"{item.get('type', '?')}: {format_price(item.get('price') or 0)}"
            for item in profile.get("pricing") or []
        ) or "-"

        await state.set_state(MentorPricing.prices)
        await state.update_data(lang=lang)
        await callback.message.answer(t("sessions:pricing_current", lang, current))
        await callback.answer()

    @router.message(MentorPricing.prices, F.text)
    async def handle_pricing(message: Message, state: FSMContext, sessions: SessionStore):
        data = await state.get_data()
        lang = data.get("lang", DEFAULT_LANG)

        try:
            pricing = parse_pricing(message.text)
        except ValueError:
            await message.answer(t("sessions:pricing_invalid", lang))
            return

        session = await sessions.load(message.from_user.id)
        try:
            await session.api().update_pricing(pricing)
        except ApiError as e:
            await message.answer(t("sessions:pricing_failed", lang, e.message))
            return

        await state.clear()
        logger.info(f"[SESSIONS] Pricing updated by tg_id={session.tg_id}: {pricing}")
        await message.answer(t("sessions:pricing_saved", lang))

    # ==========================================================
    # WEEKLY AVAILABILITY
    # ==========================================================

    @router.callback_query(F.data == "ses:availability")
    async def handle_availability_prompt(callback: CallbackQuery, state: FSMContext, sessions: SessionStore):
        session, error = await require_mentor(callback.from_user.id, sessions)
        if error:
            await callback.answer(error, show_alert=True)
            return

        lang = session.lang
        try:
            profile = await session.api().get_dashboard_profile()
        except ApiError as e:
            await callback.answer(t("common:error", lang, e.message), show_alert=True)
            return

        await state.set_state(MentorAvailability.days)
        await state.update_data(lang=lang)
        await callback.message.answer(
            t("sessions:availability_current", lang, format_availability(profile.get("availability") or []))
        )
        await callback.answer()

    @router.message(MentorAvailability.days, F.text)
    async def handle_availability(message: Message, state: FSMContext, sessions: SessionStore):
        data = await state.get_data()
        lang = data.get("lang", DEFAULT_LANG)

        try:
            availability = parse_availability(message.text)
        except ValueError as e:
            await message.answer(t("sessions:availability_invalid", lang, e))
            return

        session = await sessions.load(message.from_user.id)
        try:
            await session.api().update_availability(availability)
        except ApiError as e:
            await message.answer(t("sessions:availability_failed", lang, e.message))
            return

        await state.clear()
        logger.info(f"[SESSIONS] Availability updated by tg_id={session.tg_id}: {len(availability)} days")
        await message.answer(t("sessions:availability_saved", lang))

    @router.callback_query(F.data == "ses:hide")
    async def handle_hide(callback: CallbackQuery):
        _context.pop(callback.message.chat.id, None)
        try:
            await callback.message.delete()
        except TelegramBadRequest as e:
            logger.debug(f"[SESSIONS] Could not delete sessions message: {e}")
        await callback.answer()

    @router.callback_query(F.data == "ses:noop")
    async def handle_noop(callback: CallbackQuery):
        await callback.answer()

    return router
