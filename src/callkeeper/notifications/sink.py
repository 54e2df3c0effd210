"""
Notification sinks.

A sink either confirms delivery by returning or raises
NotificationDeliveryError; callers only mark a call notified on return.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from callkeeper.notifications.config import NotifierConfig, SinkType, get_notifier_config
from callkeeper.shared.exceptions import NotificationDeliveryError
from callkeeper.shared.logging import get_logger

logger = get_logger(__name__)


class NotificationSink(Protocol):
    """Protocol for chat delivery."""

    async def send(self, destination: str, text: str) -> None:
        """Deliver ``text`` to ``destination`` or raise NotificationDeliveryError."""
        ...

    async def close(self) -> None: ...


class TelegramNotificationSink:
    """Delivers messages through the Telegram Bot API."""

    def __init__(
        self,
        config: NotifierConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_notifier_config()
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.request_timeout_seconds),
            )
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def send(self, destination: str, text: str) -> None:
        if not self._config.bot_token:
            raise NotificationDeliveryError("TELEGRAM_BOT_TOKEN is not configured", destination)

        url = f"{self._config.api_base_url.rstrip('/')}/bot{self._config.bot_token}/sendMessage"
        payload = {"chat_id": destination, "text": text, "parse_mode": "HTML"}

        try:
            response = await self._get_client().post(url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(f"HTTP error: {e!s}", destination) from e

        body: dict[str, Any]
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code >= 400 or not body.get("ok", False):
            description = body.get("description") or response.text[:200]
            raise NotificationDeliveryError(
                f"Telegram rejected message ({response.status_code}): {description}",
                destination,
            )


class LoggingNotificationSink:
    """Writes messages to the application log instead of a chat."""

    async def send(self, destination: str, text: str) -> None:
        logger.info("Notification", extra={"destination": destination, "text": text})

    async def close(self) -> None:
        return None


def get_notification_sink(config: NotifierConfig | None = None) -> NotificationSink:
    """Create the configured notification sink."""
    cfg = config or get_notifier_config()
    if cfg.sink_type == SinkType.LOG:
        return LoggingNotificationSink()
    if cfg.sink_type == SinkType.TELEGRAM:
        return TelegramNotificationSink(cfg)
    raise ValueError(f"Unsupported notification sink_type: {cfg.sink_type}")
