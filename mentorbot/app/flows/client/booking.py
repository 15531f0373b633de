# mentorbot/app/flows/client/booking.py
"""
Booking FSM for a signed-in user.

Flow:
1. Date (calendar, next CALENDAR_HORIZON_DAYS days)
2. Time ranges (multi-select toggles) + session mode + topic
3. Submit → POST /booking/create → checkout link
4. Checkout outcome arrives through the gateway (success / dismiss / failed)
   or through the "Cancel payment" button here.

Slots are reserved by the backend only at step 3; everything before is local.
"""

import logging
from datetime import date, timedelta
from typing import Optional
from urllib.parse import urlencode

from aiogram import Bot, F, Router
from aiogram.filters import StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from mentorbot.app.config import settings
from mentorbot.app.i18n.loader import DEFAULT_LANG, t
from mentorbot.app.schemas.bookings import PaymentOrder, SessionType
from mentorbot.app.schemas.slots import TimeSlot
from mentorbot.app.services.booking import (
    FlowOutcome,
    OutcomeKind,
    PaymentFlow,
    SlotSelection,
    can_submit,
    list_available_dates,
    pending_payments,
    summarize,
)
from mentorbot.app.services.orders import format_amount, format_price
from mentorbot.app.utils.api import ApiError
from mentorbot.app.utils.pagination import build_nav_row, paginate
from mentorbot.app.utils.session import SessionStore

logger = logging.getLogger(__name__)

DAYS_PER_PAGE = 8
TOPIC_MAX_LENGTH = 200

MODE_KEYS = {
    SessionType.VIDEO.value: "booking:mode_video",
    SessionType.CHAT.value: "booking:mode_chat",
}


# ==============================================================
# FSM States
# ==============================================================

class BookingFSM(StatesGroup):
    date = State()        # pick a date
    slots = State()       # toggle time ranges, mode, topic
    topic = State()       # waiting for topic text
    submitting = State()  # reservation request in flight
    payment = State()     # checkout link sent


# ==============================================================
# Rendering
# ==============================================================

def dates_inline(dates: list[date], page: int, lang: str) -> InlineKeyboardMarkup:
    page_items, page, total_pages = paginate(dates, page, DAYS_PER_PAGE)

    buttons: list[list[InlineKeyboardButton]] = []
    row = []
    for day in page_items:
        row.append(InlineKeyboardButton(
            text=day.strftime("%a %d.%m"),
            callback_data=f"book:day:{day.isoformat()}",
        ))
        if len(row) == 2:
            buttons.append(row)
            row = []
    if row:
        buttons.append(row)

    nav_row = build_nav_row(page, total_pages, "book:dpage:{p}", "book:noop", lang)
    if nav_row:
        buttons.append(nav_row)

    buttons.append([InlineKeyboardButton(text=t("common:cancel", lang), callback_data="book:cancel")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def slots_inline(day_slots: list[TimeSlot], selection: SlotSelection, lang: str) -> InlineKeyboardMarkup:
    buttons: list[list[InlineKeyboardButton]] = []

    if not day_slots:
        buttons.append([InlineKeyboardButton(text=t("booking:no_slots", lang), callback_data="book:noop")])

    row = []
    for idx, slot in enumerate(day_slots):
        if not slot.available:
            mark = "🚫 "
        elif selection.is_selected(slot):
            mark = "✅ "
        else:
            mark = ""
        row.append(InlineKeyboardButton(text=f"{mark}{slot.label()}", callback_data=f"book:slot:{idx}"))
        if len(row) == 2:
            buttons.append(row)
            row = []
    if row:
        buttons.append(row)

    mode_row = []
    for mode, key in MODE_KEYS.items():
        mark = "• " if selection.mode == mode else ""
        mode_row.append(InlineKeyboardButton(text=f"{mark}{t(key, lang)}", callback_data=f"book:mode:{mode}"))
    buttons.append(mode_row)

    buttons.append([InlineKeyboardButton(text=t("booking:topic", lang), callback_data="book:topic")])
    buttons.append([InlineKeyboardButton(text=t("booking:submit", lang), callback_data="book:submit")])
    buttons.append([
        InlineKeyboardButton(text=t("booking:back_dates", lang), callback_data="book:back_dates"),
        InlineKeyboardButton(text=t("common:cancel", lang), callback_data="book:cancel"),
    ])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def slots_text(selection: SlotSelection, pricing: dict[str, float], lang: str) -> str:
    day = selection.selected_date.strftime("%a %d.%m.%Y") if selection.selected_date else ""
    lines = [t("booking:select_slots", lang, day)]

    summary = summarize(selection, pricing)
    if selection.selected_slots and summary is not None:
        lines.append("")
        if summary.price is None:
            lines.append(t("booking:no_price", lang, summary.total_minutes, selection.mode))
        else:
            lines.append(t("booking:summary", lang, summary.total_minutes, summary.blocks, format_price(summary.price)))

    if selection.topic:
        lines.append(t("booking:topic_current", lang, selection.topic))

    return "\n".join(lines)


def checkout_inline(order: PaymentOrder, checkout_url: str, lang: str) -> InlineKeyboardMarkup:
    amount = format_amount(order.amount, order.currency)
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=t("booking:pay", lang, amount), url=checkout_url)],
        [InlineKeyboardButton(text=t("booking:cancel_payment", lang), callback_data=f"book:pay_cancel:{order.order_id}")],
    ])


def build_checkout_url(base_url: str, order: PaymentOrder) -> str:
    """Checkout page link carrying what the provider script needs."""
    params = {
        "order_id": order.order_id,
        "provider_order_id": order.provider_order_id,
        "amount": order.amount,
        "currency": order.currency,
    }
    if order.provider_key:
        params["key"] = order.provider_key
    if order.mentor_name:
        params["description"] = f"Session with {order.mentor_name}"

    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode(params)}"


def outcome_text(outcome: FlowOutcome, lang: str, support_contact: Optional[str] = None) -> str:
    """User-facing text for every way a booking attempt ends."""
    reason = outcome.message or t("payment:unknown_error", lang)

    if outcome.kind == OutcomeKind.CONFIRMED:
        return t("payment:confirmed", lang)

    if outcome.kind == OutcomeKind.VERIFICATION_FAILED:
        text = t("payment:verification_failed", lang, reason, outcome.payment_id)
        if support_contact:
            text += "\n" + t("payment:support", lang, support_contact)
        return text

    if outcome.kind == OutcomeKind.RESERVATION_REJECTED:
        return t("booking:rejected", lang, reason)

    if outcome.kind == OutcomeKind.AUTO_RELEASE_PENDING:
        return t("payment:auto_release", lang, outcome.slot_hold_minutes)

    if outcome.kind == OutcomeKind.PAYMENT_FAILED:
        if outcome.slot_hold_minutes:
            return t("payment:failed_auto_release", lang, reason, outcome.slot_hold_minutes)
        return t("payment:failed", lang, reason)

    return t("payment:released", lang)


def make_notifier(bot: Bot, chat_id: int, state: FSMContext, lang: str):
    """Delivers a checkout outcome to the chat that started the booking."""

    async def notify(outcome: FlowOutcome) -> None:
        await _clear_if_paying(state, outcome.order_id)
        await bot.send_message(chat_id, outcome_text(outcome, lang, settings.SUPPORT_CONTACT))

    return notify


# ==============================================================
# FSM data helpers
# ==============================================================

async def _load_booking(state: FSMContext) -> tuple[dict, SlotSelection, list[TimeSlot]]:
    data = await state.get_data()
    selection = SlotSelection.from_dict(data.get("selection"))
    day_slots = [TimeSlot.model_validate(s) for s in data.get("day_slots") or []]
    return data, selection, day_slots


async def _save_booking(
    state: FSMContext,
    selection: SlotSelection,
    day_slots: Optional[list[TimeSlot]] = None,
) -> None:
    update: dict = {"selection": selection.to_dict()}
    if day_slots is not None:
        update["day_slots"] = [s.model_dump(mode="json", by_alias=True) for s in day_slots]
    await state.update_data(**update)


async def _clear_if_paying(state: FSMContext, order_id: Optional[str]) -> bool:
    """Clear the FSM only while it is still waiting on this order's checkout."""
    if await state.get_state() != BookingFSM.payment.state:
        return False
    data = await state.get_data()
    if data.get("order_id") != order_id:
        return False
    await state.clear()
    return True


# ==============================================================
# Submit
# ==============================================================

# chat ids with a reservation request in flight
_submitting: set[int] = set()


async def submit_booking(callback: CallbackQuery, state: FSMContext, api) -> None:
    data, selection, day_slots = await _load_booking(state)
    lang = data.get("lang", DEFAULT_LANG)
    pricing = data["pricing"]

    if not settings.checkout_ready:
        await callback.answer(t("booking:checkout_unavailable", lang), show_alert=True)
        return
    if not can_submit(selection, pricing, settings.checkout_ready):
        await callback.answer(t("booking:not_ready", lang), show_alert=True)
        return

    chat_id = callback.message.chat.id
    if chat_id in _submitting:
        await callback.answer(t("booking:in_progress", lang), show_alert=True)
        return
    _submitting.add(chat_id)

    try:
        await state.set_state(BookingFSM.submitting)
        await callback.answer()
        await callback.message.edit_text(t("booking:creating", lang))

        flow = PaymentFlow(
            api=api,
            selection=selection,
            mentor_id=data["mentor_id"],
            pricing_table=pricing,
            slot_hold_minutes=settings.SLOT_HOLD_MINUTES,
        )
        order = await flow.submit(checkout_ready=settings.checkout_ready)

        if order is None:
            # Reservation refused: refresh availability, keep date/mode/topic
            try:
                day_slots = await api.get_day_slots(data["mentor_id"], selection.selected_date)
            except ApiError as e:
                logger.warning(f"[BOOKING] Slot refresh failed: {e.message}")

            await _save_booking(state, selection, day_slots)
            await state.set_state(BookingFSM.slots)
            text = outcome_text(flow.outcome, lang) + "\n\n" + slots_text(selection, pricing, lang)
            await callback.message.edit_text(text, reply_markup=slots_inline(day_slots, selection, lang))
            return

        await state.set_state(BookingFSM.payment)
        await state.update_data(order_id=order.order_id)
        pending_payments.add(flow, make_notifier(callback.bot, chat_id, state, lang))

        await callback.message.edit_text(
            t("booking:checkout", lang, order.mentor_name or data.get("mentor_name", ""),
              format_amount(order.amount, order.currency)),
            reply_markup=checkout_inline(order, build_checkout_url(settings.CHECKOUT_URL, order), lang),
        )
    finally:
        _submitting.discard(chat_id)


# ==============================================================
# Flow Setup
# ==============================================================

def setup() -> Router:
    router = Router(name="client_booking")

    # ==========================================================
    # START
    # ==========================================================

    @router.callback_query(F.data.startswith("book:start:"))
    async def handle_start(callback: CallbackQuery, state: FSMContext, sessions: SessionStore):
        ctx = await sessions.load(callback.from_user.id)
        lang = ctx.lang
        if not ctx.is_logged_in:
            await callback.answer(t("auth:required", lang), show_alert=True)
            return

        mentor_id = callback.data.split(":", 2)[-1]
        client = ctx.api()
        today = date.today()

        try:
            mentor = await client.get_mentor(mentor_id)
            calendar = await client.get_calendar_slots(
                mentor_id,
                today,
                today + timedelta(days=settings.CALENDAR_HORIZON_DAYS),
            )
        except ApiError as e:
            await callback.answer(t("booking:load_failed", lang, e.message), show_alert=True)
            return

        dates = list_available_dates(calendar)
        logger.info(f"[BOOKING] Start: tg_id={ctx.tg_id} mentor={mentor_id} dates={len(dates)}")

        await state.set_state(BookingFSM.date)
        await state.set_data({
            "lang": lang,
            "mentor_id": mentor_id,
            "mentor_name": mentor.name,
            "pricing": mentor.pricing_table(),
            "dates": [d.isoformat() for d in dates],
            "selection": SlotSelection().to_dict(),
            "day_slots": [],
        })

        text = t("booking:select_date", lang, mentor.name)
        if not dates:
            text += "\n\n" + t("booking:no_dates", lang, settings.CALENDAR_HORIZON_DAYS)

        await callback.message.edit_text(text, reply_markup=dates_inline(dates, 0, lang))
        await callback.answer()

    # ==========================================================
    # DATE
    # ==========================================================

    @router.callback_query(BookingFSM.date, F.data.startswith("book:dpage:"))
    async def handle_date_page(callback: CallbackQuery, state: FSMContext):
        page = int(callback.data.split(":")[-1])
        data = await state.get_data()
        dates = [date.fromisoformat(d) for d in data.get("dates", [])]
        kb = dates_inline(dates, page, data.get("lang", DEFAULT_LANG))
        await callback.message.edit_reply_markup(reply_markup=kb)
        await callback.answer()

    @router.callback_query(BookingFSM.date, F.data.startswith("book:day:"))
    async def handle_date(callback: CallbackQuery, state: FSMContext, sessions: SessionStore):
        ctx = await sessions.load(callback.from_user.id)
        data, selection, _ = await _load_booking(state)
        lang = data.get("lang", DEFAULT_LANG)

        day = date.fromisoformat(callback.data.split(":", 2)[-1])
        try:
            day_slots = await ctx.api().get_day_slots(data["mentor_id"], day)
        except ApiError as e:
            await callback.answer(t("booking:load_failed", lang, e.message), show_alert=True)
            return

        selection.select_date(day)
        await _save_booking(state, selection, day_slots)
        await state.set_state(BookingFSM.slots)

        await callback.message.edit_text(
            slots_text(selection, data["pricing"], lang),
            reply_markup=slots_inline(day_slots, selection, lang),
        )
        await callback.answer()

    # ==========================================================
    # SLOTS / MODE / TOPIC
    # ==========================================================

    @router.callback_query(BookingFSM.slots, F.data.startswith("book:slot:"))
    async def handle_slot(callback: CallbackQuery, state: FSMContext):
        data, selection, day_slots = await _load_booking(state)
        lang = data.get("lang", DEFAULT_LANG)

        idx = int(callback.data.split(":")[-1])
        if not 0 <= idx < len(day_slots) or not selection.toggle_slot(day_slots[idx]):
            await callback.answer(t("booking:slot_taken", lang), show_alert=True)
            return

        await _save_booking(state, selection)
        await callback.message.edit_text(
            slots_text(selection, data["pricing"], lang),
            reply_markup=slots_inline(day_slots, selection, lang),
        )
        await callback.answer()

    @router.callback_query(BookingFSM.slots, F.data.startswith("book:mode:"))
    async def handle_mode(callback: CallbackQuery, state: FSMContext):
        data, selection, day_slots = await _load_booking(state)
        lang = data.get("lang", DEFAULT_LANG)

        mode = callback.data.split(":")[-1]
        if mode not in MODE_KEYS or mode == selection.mode:
            await callback.answer()
            return

        selection.set_mode(mode)
        await _save_booking(state, selection)
        await callback.message.edit_text(
            slots_text(selection, data["pricing"], lang),
            reply_markup=slots_inline(day_slots, selection, lang),
        )
        await callback.answer()

    @router.callback_query(BookingFSM.slots, F.data == "book:topic")
    async def handle_topic_prompt(callback: CallbackQuery, state: FSMContext):
        data = await state.get_data()
        await state.set_state(BookingFSM.topic)
        await callback.message.answer(t("booking:topic_prompt", data.get("lang", DEFAULT_LANG)))
        await callback.answer()

    @router.message(BookingFSM.topic, F.text)
    async def handle_topic(message: Message, state: FSMContext):
        data, selection, day_slots = await _load_booking(state)
        lang = data.get("lang", DEFAULT_LANG)

        selection.set_topic(message.text.strip()[:TOPIC_MAX_LENGTH])
        await _save_booking(state, selection)
        await state.set_state(BookingFSM.slots)

        await message.answer(
            slots_text(selection, data["pricing"], lang),
            reply_markup=slots_inline(day_slots, selection, lang),
        )

    @router.callback_query(BookingFSM.slots, F.data == "book:back_dates")
    async def handle_back_dates(callback: CallbackQuery, state: FSMContext):
        data, selection, _ = await _load_booking(state)
        lang = data.get("lang", DEFAULT_LANG)

        selection.clear_slots()
        await _save_booking(state, selection, [])
        await state.set_state(BookingFSM.date)

        dates = [date.fromisoformat(d) for d in data.get("dates", [])]
        await callback.message.edit_text(
            t("booking:select_date", lang, data.get("mentor_name", "")),
            reply_markup=dates_inline(dates, 0, lang),
        )
        await callback.answer()

    # ==========================================================
    # SUBMIT
    # ==========================================================

    @router.callback_query(BookingFSM.slots, F.data == "book:submit")
    async def handle_submit(callback: CallbackQuery, state: FSMContext, sessions: SessionStore):
        ctx = await sessions.load(callback.from_user.id)
        await submit_booking(callback, state, ctx.api())

    @router.callback_query(StateFilter(BookingFSM.submitting, BookingFSM.payment), F.data == "book:submit")
    async def handle_submit_again(callback: CallbackQuery, state: FSMContext):
        data = await state.get_data()
        await callback.answer(t("booking:in_progress", data.get("lang", DEFAULT_LANG)), show_alert=True)

    # ==========================================================
    # PAYMENT CANCEL (checkout dismissed from the chat)
    # ==========================================================

    @router.callback_query(F.data.startswith("book:pay_cancel:"))
    async def handle_pay_cancel(callback: CallbackQuery, state: FSMContext, sessions: SessionStore):
        ctx = await sessions.load(callback.from_user.id)
        order_id = callback.data.split(":", 2)[-1]

        entry = pending_payments.pop(order_id)
        if entry is None:
            await callback.answer(t("common:expired", ctx.lang), show_alert=True)
            return

        await callback.answer()
        outcome = await entry.flow.payment_dismissed()
        await _clear_if_paying(state, order_id)
        await callback.message.edit_text(outcome_text(outcome, ctx.lang))

    # ==========================================================
    # CANCEL / NOOP
    # ==========================================================

    @router.callback_query(F.data == "book:cancel")
    async def handle_cancel(callback: CallbackQuery, state: FSMContext):
        data = await state.get_data()
        await state.clear()
        await callback.message.edit_text(t("common:cancelled", data.get("lang", DEFAULT_LANG)))
        await callback.answer()

    @router.callback_query(F.data == "book:noop")
    async def handle_noop(callback: CallbackQuery):
        await callback.answer()

    return router
