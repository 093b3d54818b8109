"""Notification presenters: where a fired reminder is shown."""
import logging
from datetime import datetime
from typing import Optional

import httpx

from taskflow.clock import to_iso
from taskflow.config import Settings, get_settings
from taskflow.services.ports import NotificationPresenter, PermissionStatus

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot{token}/{method}"


class NotificationDeliveryError(RuntimeError):
    pass


class TelegramPresenter:
    """Sends reminders as Telegram Bot API messages to a single chat.

    The bot token makes the presenter "supported"; the chat id is the
    standing permission (the user opted in by starting the bot).
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout
        self._transport = transport

    def is_supported(self) -> bool:
        return bool(self._bot_token)

    def get_permission_status(self) -> PermissionStatus:
        if not self.is_supported():
            return "denied"
        return "granted" if self._chat_id else "default"

    async def request_permission(self) -> PermissionStatus:
        status = self.get_permission_status()
        if status == "default":
            logger.warning("TELEGRAM_CHAT_ID not configured; start the bot and set the chat id")
        return status

    async def show(self, task_id: str, title: str, body: str, fire_at: datetime) -> None:
        payload = {
            "chat_id": self._chat_id,
            "text": f"*{title}*\n{body}",
            "parse_mode": "Markdown",
        }
        url = TELEGRAM_API.format(token=self._bot_token, method="sendMessage")
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(url, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Telegram sendMessage failed (chat=%s): %s", self._chat_id, exc)
            raise NotificationDeliveryError(f"Telegram delivery failed for task {task_id}") from exc

    # Messages go out at fire time; nothing is queued on the Telegram side.
    def cancel(self, task_id: str) -> None:
        return None

    def cancel_all(self) -> None:
        return None


class LogPresenter:
    """Writes reminders to the log. Used when no delivery channel is configured."""

    def __init__(self):
        self.shown: list[tuple[str, str, str, datetime]] = []

    def is_supported(self) -> bool:
        return True

    def get_permission_status(self) -> PermissionStatus:
        return "granted"

    async def request_permission(self) -> PermissionStatus:
        return "granted"

    async def show(self, task_id: str, title: str, body: str, fire_at: datetime) -> None:
        self.shown.append((task_id, title, body, fire_at))
        logger.info("%s [task %s, %s]: %s", title, task_id, to_iso(fire_at), body)

    def cancel(self, task_id: str) -> None:
        return None

    def cancel_all(self) -> None:
        return None


def build_presenter(settings: Optional[Settings] = None) -> NotificationPresenter:
    settings = settings or get_settings()
    if settings.telegram_enabled:
        logger.info("Reminders will be sent via Telegram")
        return TelegramPresenter(settings.TELEGRAM_BOT_TOKEN, settings.TELEGRAM_CHAT_ID)
    logger.info("TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID not set – reminders will be logged only")
    return LogPresenter()
