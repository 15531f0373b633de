# mentorbot/app/flows/common/auth.py
"""
Entry commands: /start, /login <token>, /logout.

The marketplace authenticates with a session cookie; /login takes that
token, checks it against /auth/me and stores it in the caller's session.
"""

import logging

from aiogram import Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import Message

from mentorbot.app.config import settings
from mentorbot.app.i18n.loader import t
from mentorbot.app.keyboards.main import main_menu
from mentorbot.app.utils.api import ApiError
from mentorbot.app.utils.session import SessionStore

logger = logging.getLogger(__name__)


def setup() -> Router:
    router = Router(name="auth")

    @router.message(CommandStart())
    async def start_handler(message: Message, state: FSMContext, sessions: SessionStore):
        await state.clear()
        ctx = await sessions.load(message.from_user.id)

        if ctx.is_logged_in:
            text = t("auth:welcome", ctx.lang, ctx.user.name)
        else:
            text = t("auth:guest", ctx.lang)

        await message.answer(text, reply_markup=main_menu(ctx.lang, ctx.is_mentor))

    @router.message(Command("login"))
    async def login_handler(message: Message, command: CommandObject, sessions: SessionStore):
        ctx = await sessions.load(message.from_user.id)

        token = (command.args or "").strip()
        if not token:
            await message.answer(t("auth:login_usage", ctx.lang))
            return

        cookies = {settings.SESSION_COOKIE_NAME: token}
        try:
            user = await ctx.api().with_cookies(cookies).get_my_profile()
        except ApiError as e:
            logger.warning(f"[AUTH] Login failed for tg_id={ctx.tg_id}: {e.message}")
            await message.answer(t("auth:login_failed", ctx.lang, e.message))
            return

        ctx.login(user, cookies)
        await sessions.save(ctx)
        logger.info(f"[AUTH] tg_id={ctx.tg_id} signed in as user_id={user.id} role={user.role}")

        # Token is a credential: remove it from the chat
        try:
            await message.delete()
        except TelegramBadRequest as e:
            logger.debug(f"[AUTH] Could not delete login message: {e}")

        await message.answer(
            t("auth:login_ok", ctx.lang, user.name or user.email or user.id),
            reply_markup=main_menu(ctx.lang, ctx.is_mentor),
        )

    @router.message(Command("logout"))
    async def logout_handler(message: Message, state: FSMContext, sessions: SessionStore):
        await state.clear()
        ctx = await sessions.load(message.from_user.id)

        if ctx.is_logged_in:
            try:
                await ctx.api().logout()
            except ApiError as e:
                logger.warning(f"[AUTH] Backend logout failed for tg_id={ctx.tg_id}: {e.message}")

        await sessions.drop(ctx.tg_id)
        await message.answer(t("auth:logged_out", ctx.lang), reply_markup=main_menu(ctx.lang))

    return router
