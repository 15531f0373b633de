"""
mentorbot/app/utils/session.py

Per-user session context with Redis persistence.

The store is created once at startup and handed to handlers through the
dispatcher (``dp["sessions"]``); handlers receive it as ``sessions``.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from mentorbot.app.i18n.loader import DEFAULT_LANG
from mentorbot.app.schemas.users import UserProfile
from mentorbot.app.utils.api import ApiClient, api as public_api

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    tg_id: int
    user: Optional[UserProfile] = None
    cookies: dict = field(default_factory=dict)
    lang: str = DEFAULT_LANG

    @property
    def is_logged_in(self) -> bool:
        return self.user is not None

    @property
    def is_mentor(self) -> bool:
        return self.user is not None and self.user.is_mentor

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None

    def login(self, user: UserProfile, cookies: dict) -> None:
        self.user = user
        self.cookies = dict(cookies)

    def logout(self) -> None:
        self.user = None
        self.cookies = {}

    def api(self, base: ApiClient = public_api) -> ApiClient:
        """API client carrying this session's credentials."""
        return base.with_cookies(self.cookies)

    # ----------------------------------------
    # Serialization
    # ----------------------------------------

    def to_json(self) -> str:
        return json.dumps({
            "tg_id": self.tg_id,
            "user": self.user.model_dump(mode="json", by_alias=True) if self.user else None,
            "cookies": self.cookies,
            "lang": self.lang,
        })

    @classmethod
    def from_json(cls, raw: str) -> "SessionContext":
        data = json.loads(raw)
        user = data.get("user")
        return cls(
            tg_id=int(data["tg_id"]),
            user=UserProfile.model_validate(user) if user else None,
            cookies=data.get("cookies") or {},
            lang=data.get("lang") or DEFAULT_LANG,
        )


class SessionStore:
    """Sessions in Redis, one key per Telegram user, refreshed on save."""

    def __init__(self, redis, ttl_seconds: int):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(tg_id: int) -> str:
        return f"mentorbot:session:{tg_id}"

    async def load(self, tg_id: int) -> SessionContext:
        """Stored session, or a fresh anonymous one."""
        raw = await self.redis.get(self._key(tg_id))
        if not raw:
            return SessionContext(tg_id=tg_id)

        try:
            return SessionContext.from_json(raw)
        except (ValueError, KeyError) as e:
            logger.warning(f"[SESSION] Corrupt session for tg_id={tg_id}: {e}")
            return SessionContext(tg_id=tg_id)

    async def save(self, ctx: SessionContext) -> None:
        await self.redis.setex(self._key(ctx.tg_id), self.ttl_seconds, ctx.to_json())

    async def drop(self, tg_id: int) -> None:
        await self.redis.delete(self._key(tg_id))
