from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./taskflow.db"

    # App
    APP_DEBUG: bool = False
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000

    # Reminder scheduling
    RECONCILE_INTERVAL_SECONDS: float = 300.0
    DEFAULT_REMINDER_MINUTES: int = 15

    # Telegram presenter. Leave empty to log reminders instead of sending them.
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""

    @field_validator("RECONCILE_INTERVAL_SECONDS")
    @classmethod
    def interval_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("RECONCILE_INTERVAL_SECONDS must be positive")
        return v

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.TELEGRAM_BOT_TOKEN and self.TELEGRAM_CHAT_ID)


@lru_cache
def get_settings() -> Settings:
    return Settings()
