"""Outbound alerts for messages classified as important."""

from __future__ import annotations

import abc
import re

import httpx
import structlog

from .config import TelegramConfig
from .errors import NotificationError

logger = structlog.get_logger()

# Characters reserved by Telegram MarkdownV2, plus the escape character itself
_MARKDOWN_V2_SPECIAL = re.compile(r"([\\_*\[\]()~`>#+\-=|{}.!])")


def escape_markdown_v2(text: str) -> str:
    """Escape *text* for literal display inside a MarkdownV2 message."""
    return _MARKDOWN_V2_SPECIAL.sub(r"\\\1", text)


def format_alert(sender: str, summary: str, user_email_address: str) -> str:
    return (
        "*🔔 PingPal Alert: Important Email*\n\n"
        f"*From:* {escape_markdown_v2(sender)}\n"
        f"*Summary:* {escape_markdown_v2(summary)}\n\n"
        f"Check your inbox @ {escape_markdown_v2(user_email_address)}"
    )


class NotifierAdapter(abc.ABC):
    """Delivers one alert; raises :class:`NotificationError` on failure."""

    async def start(self) -> None:
        """Acquire resources.  Optional."""

    async def stop(self) -> None:
        """Release resources acquired in :meth:`start`.  Optional."""

    @abc.abstractmethod
    async def notify(self, sender: str, summary: str) -> None:
        ...


class TelegramNotifier(NotifierAdapter):
    """Sends alerts through the Telegram Bot API ``sendMessage`` method."""

    def __init__(self, config: TelegramConfig, user_email_address: str) -> None:
        self._config = config
        self._user_email_address = user_email_address
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._config.api_base_url,
            timeout=httpx.Timeout(self._config.timeout_seconds),
        )
        logger.info("notifier_started", chat_id=self._config.chat_id)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("notifier_stopped")

    async def notify(self, sender: str, summary: str) -> None:
        if self._client is None:
            raise NotificationError("notifier not started")

        path = f"/bot{self._config.bot_token.get_secret_value()}/sendMessage"
        request = {
            "chat_id": self._config.chat_id,
            "text": format_alert(sender, summary, self._user_email_address),
            "parse_mode": "MarkdownV2",
        }
        try:
            response = await self._client.post(path, json=request)
            body = response.json()
        except httpx.HTTPError as exc:
            # The request URL carries the bot token; keep it out of the message
            raise NotificationError(f"telegram request failed: {type(exc).__name__}") from exc
        except ValueError as exc:
            raise NotificationError(
                f"telegram returned a non-JSON response (HTTP {response.status_code})"
            ) from exc

        if not isinstance(body, dict) or not body.get("ok"):
            description = body.get("description") if isinstance(body, dict) else None
            raise NotificationError(
                f"telegram rejected the message (HTTP {response.status_code}): {description}"
            )
        logger.info("alert_sent", chat_id=self._config.chat_id, sender=sender)
