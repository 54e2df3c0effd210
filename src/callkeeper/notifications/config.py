"""
Notification sink configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SinkType(str, Enum):
    """Supported notification sinks."""

    TELEGRAM = "telegram"
    LOG = "log"


class NotifierConfig(BaseSettings):
    """Chat delivery configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sink_type: SinkType = Field(default=SinkType.TELEGRAM)
    bot_token: str = Field(default="")
    api_base_url: str = Field(default="https://api.telegram.org")
    request_timeout_seconds: float = Field(default=10.0, gt=0, le=120)


def get_notifier_config() -> NotifierConfig:
    return NotifierConfig()
