from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    # Marketplace REST API
    API_URL: str = "http://localhost:3000/api/v1"
    API_TIMEOUT_SECONDS: Optional[float] = None

    # Telegram
    TG_BOT_TOKEN: Optional[str] = None
    TG_WEBHOOK_SECRET: Optional[str] = None

    # Session cache
    REDIS_URL: str = "redis://localhost:6379/0"
    SESSION_TTL_SECONDS: int = 60 * 60 * 24 * 30
    SESSION_COOKIE_NAME: str = "token"

    # Payment checkout page (hosts the provider script)
    CHECKOUT_URL: Optional[str] = None
    SUPPORT_CONTACT: Optional[str] = None

    # Booking / meeting rules mirrored from the backend
    SLOT_HOLD_MINUTES: int = 10
    CALENDAR_HORIZON_DAYS: int = 60
    MEETING_DURATION_MINUTES: int = 60

    # Session times are shown in this zone
    DISPLAY_TIMEZONE: str = "Asia/Kolkata"

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def checkout_ready(self) -> bool:
        return bool(self.CHECKOUT_URL)


settings = Settings()
