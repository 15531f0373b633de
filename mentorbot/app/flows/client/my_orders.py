# mentorbot/app/flows/client/my_orders.py
"""
Flow for viewing the user's orders (bookings).

Filters: all / upcoming / past. Meetings inside their join window get a
join button that opens the meeting screen.
"""

import logging
from datetime import datetime, timezone

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from mentorbot.app.config import settings
from mentorbot.app.i18n.loader import DEFAULT_LANG, t, t_all
from mentorbot.app.schemas.bookings import Booking
from mentorbot.app.services.meetings.join_window import ROLE_USER, check_join
from mentorbot.app.services.orders import (
    FILTER_ALL,
    FILTERS,
    filter_bookings,
    format_amount,
    format_when,
    status_emoji,
    status_label,
)
from mentorbot.app.utils.api import ApiError
from mentorbot.app.utils.pagination import build_nav_row, paginate
from mentorbot.app.utils.session import SessionStore

logger = logging.getLogger(__name__)

PAGE_SIZE = 5
FETCH_LIMIT = 100

# chat_id → {"bookings": [...], "filter": str, "lang": str}
_context: dict[int, dict] = {}


def order_line(booking: Booking, lang: str) -> str:
    if booking.order and booking.order.amount:
        money = format_amount(booking.order.amount, booking.order.currency)
    else:
        money = status_label(booking.status)
    return t(
        "orders:item",
        lang,
        status_emoji(booking.status),
        format_when(booking.scheduled_at, settings.DISPLAY_TIMEZONE),
        booking.mentor.name,
        money,
    )


def my_orders_inline(
    bookings: list[Booking],
    mode: str,
    page: int,
    lang: str,
    now: datetime,
) -> InlineKeyboardMarkup:
    buttons: list[list[InlineKeyboardButton]] = []

    buttons.append([
        InlineKeyboardButton(
            text=("• " if f == mode else "") + t(f"orders:filter_{f}", lang),
            callback_data=f"ord:filter:{f}",
        )
        for f in FILTERS
    ])

    visible = filter_bookings(bookings, mode, now)
    page_items, page, total_pages = paginate(visible, page, PAGE_SIZE)

    if not page_items:
        buttons.append([InlineKeyboardButton(text=t("orders:empty", lang), callback_data="ord:noop")])

    for booking in page_items:
        buttons.append([InlineKeyboardButton(text=order_line(booking, lang), callback_data="ord:noop")])
        if check_join(now, booking, ROLE_USER).allowed:
            buttons.append([InlineKeyboardButton(
                text=t("meeting:join", lang),
                callback_data=f"meet:open:{booking.id}",
            )])

    nav_row = build_nav_row(page, total_pages, f"ord:page:{mode}:{{p}}", "ord:noop", lang)
    if nav_row:
        buttons.append(nav_row)

    buttons.append([InlineKeyboardButton(text=t("common:hide", lang), callback_data="ord:hide")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def setup() -> Router:
    router = Router(name="client_my_orders")

    def render(chat_id: int, page: int = 0) -> tuple[str, InlineKeyboardMarkup]:
        ctx = _context[chat_id]
        now = datetime.now(timezone.utc)
        count = len(filter_bookings(ctx["bookings"], ctx["filter"], now))
        title = t("orders:title", ctx["lang"], count)
        return title, my_orders_inline(ctx["bookings"], ctx["filter"], page, ctx["lang"], now)

    @router.message(Command("orders"))
    @router.message(F.text.in_(t_all("menu:orders")))
    async def show_my_orders(message: Message, state: FSMContext, sessions: SessionStore):
        await state.clear()
        session = await sessions.load(message.from_user.id)
        lang = session.lang
        if not session.is_logged_in:
            await message.answer(t("auth:required", lang))
            return

        try:
            result = await session.api().get_user_bookings(limit=FETCH_LIMIT)
        except ApiError as e:
            await message.answer(t("orders:load_failed", lang, e.message))
            return

        bookings = sorted(result.items, key=lambda b: b.scheduled_at, reverse=True)
        chat_id = message.chat.id
        _context[chat_id] = {"bookings": bookings, "filter": FILTER_ALL, "lang": lang}

        title, kb = render(chat_id)
        await message.answer(title, reply_markup=kb)

    @router.callback_query(F.data.startswith("ord:filter:"))
    async def handle_filter(callback: CallbackQuery):
        chat_id = callback.message.chat.id
        if chat_id not in _context:
            await callback.answer(t("common:expired", DEFAULT_LANG), show_alert=True)
            return

        mode = callback.data.split(":")[-1]
        if mode in FILTERS:
            _context[chat_id]["filter"] = mode

        title, kb = render(chat_id)
        await callback.message.edit_text(title, reply_markup=kb)
        await callback.answer()

    @router.callback_query(F.data.startswith("ord:page:"))
    async def handle_page(callback: CallbackQuery):
        chat_id = callback.message.chat.id
        if chat_id not in _context:
            await callback.answer(t("common:expired", DEFAULT_LANG), show_alert=True)
            return

        _, _, mode, page = callback.data.split(":")
        if mode in FILTERS:
            _context[chat_id]["filter"] = mode

        title, kb = render(chat_id, int(page))
        await callback.message.edit_text(title, reply_markup=kb)
        await callback.answer()

    @router.callback_query(F.data == "ord:hide")
    async def handle_hide(callback: CallbackQuery):
        _context.pop(callback.message.chat.id, None)
        try:
            await callback.message.delete()
        except TelegramBadRequest as e:
            logger.debug(f"[ORDERS] Could not delete orders message: {e}")
        await callback.answer()

    @router.callback_query(F.data == "ord:noop")
    async def handle_noop(callback: CallbackQuery):
        await callback.answer()

    return router
