"""
Configuration management for the sync service.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from walletsync.constants import (
    DEFAULT_MAX_SYNC_ATTEMPTS,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_SEND_POLL_INTERVAL,
    DEFAULT_SYNC_POLL_INTERVAL,
    DEFAULT_UPDATE_INTERVAL,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    engine_url: str = "http://127.0.0.1:9067"
    engine_timeout: float = 60.0

    refresh_interval: float = Field(default=DEFAULT_REFRESH_INTERVAL, gt=0)
    update_interval: float = Field(default=DEFAULT_UPDATE_INTERVAL, gt=0)
    sync_poll_interval: float = Field(default=DEFAULT_SYNC_POLL_INTERVAL, ge=0)
    max_sync_attempts: int = Field(default=DEFAULT_MAX_SYNC_ATTEMPTS, ge=1)
    send_poll_interval: float = Field(default=DEFAULT_SEND_POLL_INTERVAL, ge=0)

    log_level: str = "INFO"

    def session_options(self) -> dict[str, float | int]:
        return {
            "refresh_interval": self.refresh_interval,
            "update_interval": self.update_interval,
            "sync_poll_interval": self.sync_poll_interval,
            "max_sync_attempts": self.max_sync_attempts,
            "send_poll_interval": self.send_poll_interval,
        }


def get_settings() -> Settings:
    return Settings()
