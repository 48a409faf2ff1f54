"""Tests for pingpal_email.notifier."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from pingpal_email.config import TelegramConfig
from pingpal_email.errors import NotificationError
from pingpal_email.notifier import TelegramNotifier, escape_markdown_v2, format_alert

SEND_URL = "https://telegram.test/bot123:abc/sendMessage"


class TestEscapeMarkdownV2:
    def test_reserved_characters(self):
        assert escape_markdown_v2("a_b*c[d]e(f)g~h`i>j#k+l-m=n|o{p}q.r!s") == (
            r"a\_b\*c\[d\]e\(f\)g\~h\`i\>j\#k\+l\-m\=n\|o\{p\}q\.r\!s"
        )

    def test_email_address(self):
        assert escape_markdown_v2("first.last@example.com") == r"first\.last@example\.com"

    def test_backslash(self):
        assert escape_markdown_v2("C:\\temp") == "C:\\\\temp"

    def test_plain_text_unchanged(self):
        assert escape_markdown_v2("Meeting at 3pm") == "Meeting at 3pm"


class TestFormatAlert:
    def test_layout(self):
        text = format_alert("boss@corp.com", "Meeting moved.", "me@home.org")
        assert text == (
            "*🔔 PingPal Alert: Important Email*\n\n"
            "*From:* boss@corp\\.com\n"
            "*Summary:* Meeting moved\\.\n\n"
            "Check your inbox @ me@home\\.org"
        )


class TestTelegramNotifier:
    @pytest.mark.asyncio
    @respx.mock
    async def test_send_success(self, telegram_config: TelegramConfig):
        route = respx.post(SEND_URL).respond(200, json={"ok": True, "result": {"message_id": 1}})

        notifier = TelegramNotifier(telegram_config, "me@home.org")
        await notifier.start()
        try:
            await notifier.notify("boss@corp.com", "Meeting time changed to 3pm")
        finally:
            await notifier.stop()

        assert route.called
        body = json.loads(route.calls[0].request.content)
        assert body["chat_id"] == "4242"
        assert body["parse_mode"] == "MarkdownV2"
        assert "*Summary:* Meeting time changed to 3pm" in body["text"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_api_rejection(self, telegram_config: TelegramConfig):
        respx.post(SEND_URL).respond(
            400,
            json={"ok": False, "description": "Bad Request: can't parse entities"},
        )
        notifier = TelegramNotifier(telegram_config, "me@home.org")
        await notifier.start()
        try:
            with pytest.raises(NotificationError, match="can't parse entities"):
                await notifier.notify("a@b.com", "summary")
        finally:
            await notifier.stop()

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error_hides_token(self, telegram_config: TelegramConfig):
        respx.post(SEND_URL).mock(side_effect=httpx.ConnectError("unreachable"))
        notifier = TelegramNotifier(telegram_config, "me@home.org")
        await notifier.start()
        try:
            with pytest.raises(NotificationError) as excinfo:
                await notifier.notify("a@b.com", "summary")
        finally:
            await notifier.stop()
        assert "123:abc" not in str(excinfo.value)

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_response(self, telegram_config: TelegramConfig):
        respx.post(SEND_URL).respond(502, text="Bad Gateway")
        notifier = TelegramNotifier(telegram_config, "me@home.org")
        await notifier.start()
        try:
            with pytest.raises(NotificationError, match="502"):
                await notifier.notify("a@b.com", "summary")
        finally:
            await notifier.stop()

    @pytest.mark.asyncio
    async def test_not_started(self, telegram_config: TelegramConfig):
        with pytest.raises(NotificationError, match="not started"):
            await TelegramNotifier(telegram_config, "me@home.org").notify("a@b.com", "s")
