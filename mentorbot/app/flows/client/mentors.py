# mentorbot/app/flows/client/mentors.py
"""
Mentor directory: category chips, text search, paged list, mentor card.

The card's "Book" button hands over to the booking flow (book:start:<id>).
"""

import logging

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from mentorbot.app.i18n.loader import t, t_all
from mentorbot.app.schemas.mentors import Mentor
from mentorbot.app.services.directory import ALL, CATEGORIES, filter_mentors, toggle_category
from mentorbot.app.services.orders import format_price
from mentorbot.app.utils.api import ApiError, api
from mentorbot.app.utils.pagination import build_nav_row, paginate
from mentorbot.app.utils.session import SessionStore

logger = logging.getLogger(__name__)

PAGE_SIZE = 6
CHIPS_PER_ROW = 3

# chat_id → {"mentors": [...], "categories": [...], "search": str, "page": int}
_context: dict[int, dict] = {}


class MentorSearch(StatesGroup):
    query = State()


# ==============================================================
# Inline Keyboards
# ==============================================================

def directory_inline(
    mentors: list[Mentor],
    categories: list[str],
    search: str,
    page: int,
    lang: str,
) -> InlineKeyboardMarkup:
    buttons: list[list[InlineKeyboardButton]] = []

    row = []
    for idx, category in enumerate(CATEGORIES):
        mark = "✅ " if category in categories else ""
        row.append(InlineKeyboardButton(text=f"{mark}{category}", callback_data=f"mnt:cat:{idx}"))
        if len(row) == CHIPS_PER_ROW:
            buttons.append(row)
            row = []
    if row:
        buttons.append(row)

    page_items, page, total_pages = paginate(mentors, page, PAGE_SIZE)

    if not page_items:
        buttons.append([InlineKeyboardButton(text=t("mentors:empty", lang), callback_data="mnt:noop")])

    for mentor in page_items:
        dot = "🟢 " if mentor.is_available_now else ""
        text = f"{dot}{mentor.name}"
        if mentor.expertise:
            text += f" · {mentor.expertise[0]}"
        buttons.append([InlineKeyboardButton(text=text, callback_data=f"mnt:open:{mentor.id}")])

    nav_row = build_nav_row(page, total_pages, "mnt:page:{p}", "mnt:noop", lang)
    if nav_row:
        buttons.append(nav_row)

    search_row = [InlineKeyboardButton(text=t("mentors:search", lang), callback_data="mnt:search")]
    if search:
        search_row.append(InlineKeyboardButton(text=t("mentors:clear_search", lang), callback_data="mnt:clear"))
    buttons.append(search_row)

    buttons.append([InlineKeyboardButton(text=t("common:hide", lang), callback_data="mnt:hide")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def mentor_card_inline(mentor: Mentor, lang: str) -> InlineKeyboardMarkup:
    buttons = []
    if mentor.pricing_table():
        buttons.append([InlineKeyboardButton(text=t("mentor:book", lang), callback_data=f"book:start:{mentor.id}")])
    buttons.append([InlineKeyboardButton(text=t("common:back", lang), callback_data="mnt:back")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def mentor_card_text(mentor: Mentor, lang: str) -> str:
    lines = [f"👤 {mentor.name}", mentor.title]
    if mentor.is_available_now:
        lines.append(t("mentor:available_now", lang))
    lines.append("")

    if mentor.expertise:
        lines.append(t("mentor:expertise", lang, mentor.specialization))
    if mentor.languages:
        lines.append(t("mentor:languages", lang, ", ".join(mentor.languages)))
    lines.append(t("mentor:experience", lang, mentor.years_experience, mentor.experience))
    lines.append(t("mentor:sessions", lang, mentor.sessions_completed))
    lines.append("")

    pricing = mentor.pricing_table()
    if not pricing:
        lines.append(t("mentor:no_pricing", lang))
    for session_type, price in pricing.items():
        lines.append(t("mentor:price", lang, session_type.capitalize(), format_price(price)))

    return "\n".join(lines)


def directory_title(total: int, search: str, lang: str) -> str:
    if search:
        return t("mentors:filtered", lang, total, search)
    return t("mentors:title", lang, total)


# ==============================================================
# Flow Setup
# ==============================================================

def setup() -> Router:
    router = Router(name="client_mentors")

    def render(chat_id: int, lang: str) -> tuple[str, InlineKeyboardMarkup]:
        ctx = _context[chat_id]
        visible = filter_mentors(ctx["mentors"], ctx["search"], ctx["categories"])
        kb = directory_inline(visible, ctx["categories"], ctx["search"], ctx["page"], lang)
        return directory_title(len(visible), ctx["search"], lang), kb

    async def show_directory(message: Message, lang: str):
        try:
            mentors = await api.get_active_mentors()
        except ApiError as e:
            await message.answer(t("mentors:load_failed", lang, e.message))
            return

        chat_id = message.chat.id
        _context[chat_id] = {"mentors": mentors, "categories": [ALL], "search": "", "page": 0, "lang": lang}

        text, kb = render(chat_id, lang)
        await message.answer(text, reply_markup=kb)

    @router.message(Command("mentors"))
    @router.message(F.text.in_(t_all("menu:mentors")))
    async def handle_entry(message: Message, state: FSMContext, sessions: SessionStore):
        await state.clear()
        ctx = await sessions.load(message.from_user.id)
        await show_directory(message, ctx.lang)

    @router.callback_query(F.data.startswith("mnt:cat:"))
    async def handle_category(callback: CallbackQuery):
        chat_id = callback.message.chat.id
        ctx = _context.get(chat_id)
        if ctx is None:
            await callback.answer(t("common:expired"), show_alert=True)
            return

        idx = int(callback.data.split(":")[-1])
        if 0 <= idx < len(CATEGORIES):
            ctx["categories"] = toggle_category(ctx["categories"], CATEGORIES[idx])
            ctx["page"] = 0

        text, kb = render(chat_id, ctx["lang"])
        await callback.message.edit_text(text, reply_markup=kb)
        await callback.answer()

    @router.callback_query(F.data.startswith("mnt:page:"))
    async def handle_page(callback: CallbackQuery):
        chat_id = callback.message.chat.id
        ctx = _context.get(chat_id)
        if ctx is None:
            await callback.answer(t("common:expired"), show_alert=True)
            return

        ctx["page"] = int(callback.data.split(":")[-1])
        text, kb = render(chat_id, ctx["lang"])
        await callback.message.edit_text(text, reply_markup=kb)
        await callback.answer()

    @router.callback_query(F.data == "mnt:search")
    async def handle_search(callback: CallbackQuery, state: FSMContext):
        ctx = _context.get(callback.message.chat.id, {})
        await state.set_state(MentorSearch.query)
        await callback.message.answer(t("mentors:search_prompt", ctx.get("lang")))
        await callback.answer()

    @router.message(MentorSearch.query, F.text)
    async def handle_search_text(message: Message, state: FSMContext):
        await state.clear()
        chat_id = message.chat.id
        ctx = _context.get(chat_id)
        if ctx is None:
            await message.answer(t("common:expired"))
            return

        ctx["search"] = message.text.strip()
        ctx["page"] = 0
        text, kb = render(chat_id, ctx["lang"])
        await message.answer(text, reply_markup=kb)

    @router.callback_query(F.data == "mnt:clear")
    async def handle_clear(callback: CallbackQuery):
        chat_id = callback.message.chat.id
        ctx = _context.get(chat_id)
        if ctx is None:
            await callback.answer(t("common:expired"), show_alert=True)
            return

        ctx["search"] = ""
        ctx["page"] = 0
        text, kb = render(chat_id, ctx["lang"])
        await callback.message.edit_text(text, reply_markup=kb)
        await callback.answer()

    @router.callback_query(F.data.startswith("mnt:open:"))
    async def handle_open(callback: CallbackQuery):
        chat_id = callback.message.chat.id
        ctx = _context.get(chat_id, {})
        lang = ctx.get("lang")
        mentor_id = callback.data.split(":", 2)[-1]

        mentor = next((m for m in ctx.get("mentors", []) if m.id == mentor_id), None)
        if mentor is None:
            try:
                mentor = await api.get_mentor(mentor_id)
            except ApiError as e:
                await callback.answer(t("common:error", lang, e.message), show_alert=True)
                return

        await callback.message.edit_text(
            mentor_card_text(mentor, lang),
            reply_markup=mentor_card_inline(mentor, lang),
        )
        await callback.answer()

    @router.callback_query(F.data == "mnt:back")
    async def handle_back(callback: CallbackQuery):
        chat_id = callback.message.chat.id
        ctx = _context.get(chat_id)
        if ctx is None:
            await callback.answer(t("common:expired"), show_alert=True)
            return

        text, kb = render(chat_id, ctx["lang"])
        await callback.message.edit_text(text, reply_markup=kb)
        await callback.answer()

    @router.callback_query(F.data == "mnt:hide")
    async def handle_hide(callback: CallbackQuery):
        _context.pop(callback.message.chat.id, None)
        try:
            await callback.message.delete()
        except TelegramBadRequest as e:
            logger.debug(f"[MENTORS] Could not delete directory message: {e}")
        await callback.answer()

    @router.callback_query(F.data == "mnt:noop")
    async def handle_noop(callback: CallbackQuery):
        await callback.answer()

    return router
