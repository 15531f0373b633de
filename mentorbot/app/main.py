"""
mentorbot/app/main.py

Telegram bot entry point.

ONLY:
- bot, dp and the session store
- router registration
- process_update for the gateway (webhook mode)
- polling for local runs

No business logic here.
"""

import asyncio
import logging

import redis.asyncio as redis
from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.redis import RedisStorage
from aiogram.types import Update
from pydantic import ValidationError

from mentorbot.app.config import settings
from mentorbot.app.i18n.loader import load_messages
from mentorbot.app.utils.session import SessionStore


# ------------------------------------------------------------------
# Setup
# ------------------------------------------------------------------

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

if not settings.TG_BOT_TOKEN:
    raise RuntimeError("TG_BOT_TOKEN is not set")

# Reply-button filters are built from the loaded copy
load_messages()

from mentorbot.app.flows.client import booking, mentors, my_orders  # noqa: E402
from mentorbot.app.flows.common import auth, meeting  # noqa: E402
from mentorbot.app.flows.mentor import sessions as mentor_sessions  # noqa: E402

redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

bot = Bot(token=settings.TG_BOT_TOKEN)
dp = Dispatcher(storage=RedisStorage.from_url(settings.REDIS_URL))

# Passed to every handler as ``sessions``
dp["sessions"] = SessionStore(redis_client, settings.SESSION_TTL_SECONDS)


# ------------------------------------------------------------------
# Register handlers
# ------------------------------------------------------------------

# Entry commands and menu buttons first: they reset any pending FSM input
dp.include_router(auth.setup())
dp.include_router(mentors.setup())
dp.include_router(my_orders.setup())
dp.include_router(mentor_sessions.setup())
dp.include_router(booking.setup())
dp.include_router(meeting.setup())


# ------------------------------------------------------------------
# Shutdown
# ------------------------------------------------------------------

async def shutdown():
    """Cancel running meeting timers and close connections."""
    await meeting.stop_all_timers()
    await redis_client.aclose()
    await dp.storage.close()
    await bot.session.close()
    logger.info("Bot shut down")


# ------------------------------------------------------------------
# Gateway entrypoint
# ------------------------------------------------------------------

async def process_update(update_data: dict):
    """
    Single entry point for the gateway.
    """
    try:
        update = Update.model_validate(update_data)
    except ValidationError as e:
        logger.warning("Invalid Telegram update: %s", e)
        return

    try:
        await dp.feed_update(bot, update)
    except Exception:
        logger.exception("Error processing Telegram update")


# ------------------------------------------------------------------
# Local run (long polling)
# ------------------------------------------------------------------

async def main():
    logger.info("Starting bot in polling mode")
    try:
        await dp.start_polling(bot)
    finally:
        await shutdown()


if __name__ == "__main__":
    asyncio.run(main())
