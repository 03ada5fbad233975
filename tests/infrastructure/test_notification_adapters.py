"""Tests for notification adapters (Feishu, Telegram) and the dispatcher."""

import json
import logging
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from bandwatch.domain.ports.notification_port import NotificationPort
from bandwatch.infrastructure.adapters.feishu_adapter import (
    FeishuAdapter,
    build_approval_card,
    build_text_payload,
)
from bandwatch.infrastructure.adapters.notification_dispatcher import NotificationDispatcher
from bandwatch.infrastructure.adapters.telegram_adapter import TelegramAdapter

WEBHOOK = "https://open.feishu.cn/open-apis/bot/v2/hook/abc"
APPROVE_URL = "https://example.com/ticket/approve?token=t1"


class _Recorder:
    """MockTransport handler capturing JSON bodies."""

    def __init__(self, status=200, body=None):
        self.status = status
        self.body = {"ok": True} if body is None else body
        self.requests: list[httpx.Request] = []

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)


def _channel(result=True):
    channel = MagicMock()
    channel.send_text = AsyncMock(return_value=result)
    channel.send_approval_request = AsyncMock(return_value=result)
    return channel


class TestFeishuPayloads:
    def test_text_payload(self):
        assert build_text_payload("hi") == {"msg_type": "text", "content": {"text": "hi"}}

    def test_card_button_opens_approval_link(self):
        card = build_approval_card(8.456, 20.0, APPROVE_URL)
        assert card["msg_type"] == "interactive"
        assert card["card"]["header"]["template"] == "red"
        body = card["card"]["elements"][0]["text"]["content"]
        assert "8.46 Mbps" in body
        assert "20 Mbps" in body
        button = card["card"]["elements"][-1]["actions"][0]
        assert button["url"] == APPROVE_URL


class TestFeishuAdapter:
    @pytest.mark.asyncio
    async def test_send_text_posts_to_webhook(self):
        recorder = _Recorder(body={"code": 0})
        adapter = FeishuAdapter(WEBHOOK, transport=httpx.MockTransport(recorder))
        assert await adapter.send_text("hello") is True
        assert str(recorder.requests[0].url) == WEBHOOK
        assert recorder.payloads[0]["content"]["text"] == "hello"

    @pytest.mark.asyncio
    async def test_send_approval_request(self):
        recorder = _Recorder(body={"code": 0})
        adapter = FeishuAdapter(WEBHOOK, transport=httpx.MockTransport(recorder))
        assert await adapter.send_approval_request(9.0, 20.0, APPROVE_URL) is True
        assert APPROVE_URL in json.dumps(recorder.payloads[0])

    @pytest.mark.asyncio
    async def test_http_error_status_returns_false(self):
        adapter = FeishuAdapter(WEBHOOK, transport=httpx.MockTransport(_Recorder(status=500)))
        assert await adapter.send_text("hello") is False

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        adapter = FeishuAdapter(WEBHOOK, transport=httpx.MockTransport(handler))
        assert await adapter.send_text("hello") is False

    def test_implements_port(self):
        assert isinstance(FeishuAdapter(WEBHOOK), NotificationPort)


class TestTelegramAdapter:
    @pytest.mark.asyncio
    async def test_send_text(self):
        recorder = _Recorder()
        adapter = TelegramAdapter("123:abc", "42", transport=httpx.MockTransport(recorder))
        assert await adapter.send_text("hello") is True
        request = recorder.requests[0]
        assert request.url.path == "/bot123:abc/sendMessage"
        assert recorder.payloads[0] == {"chat_id": "42", "text": "hello"}

    @pytest.mark.asyncio
    async def test_approval_uses_inline_button(self):
        recorder = _Recorder()
        adapter = TelegramAdapter("123:abc", "42", transport=httpx.MockTransport(recorder))
        assert await adapter.send_approval_request(9.0, 20.0, APPROVE_URL) is True
        keyboard = recorder.payloads[0]["reply_markup"]["inline_keyboard"]
        assert keyboard[0][0]["url"] == APPROVE_URL

    @pytest.mark.asyncio
    async def test_interactive_approval_uses_callback_buttons(self):
        recorder = _Recorder()
        adapter = TelegramAdapter(
            "123:abc", "42", transport=httpx.MockTransport(recorder), interactive=True
        )
        assert await adapter.send_approval_request(9.0, 20.0, APPROVE_URL) is True
        buttons = recorder.payloads[0]["reply_markup"]["inline_keyboard"][0]
        assert [b["callback_data"] for b in buttons] == ["approve:t1", "cancel:t1"]
        assert all("url" not in b for b in buttons)

    @pytest.mark.asyncio
    async def test_interactive_without_token_falls_back_to_link(self):
        recorder = _Recorder()
        adapter = TelegramAdapter(
            "123:abc", "42", transport=httpx.MockTransport(recorder), interactive=True
        )
        await adapter.send_approval_request(9.0, 20.0, "https://example.com/approve")
        keyboard = recorder.payloads[0]["reply_markup"]["inline_keyboard"]
        assert keyboard[0][0]["url"] == "https://example.com/approve"

    @pytest.mark.asyncio
    async def test_not_ok_response_returns_false(self):
        recorder = _Recorder(body={"ok": False, "description": "chat not found"})
        adapter = TelegramAdapter("123:abc", "42", transport=httpx.MockTransport(recorder))
        assert await adapter.send_text("hello") is False

    @pytest.mark.asyncio
    async def test_transport_error_does_not_log_token(self, caplog):
        def handler(request):
            raise httpx.ConnectError(f"cannot reach {request.url}", request=request)

        adapter = TelegramAdapter("123:secret-token", "42", transport=httpx.MockTransport(handler))
        with caplog.at_level(logging.ERROR, logger="bandwatch"):
            assert await adapter.send_text("hello") is False
        assert "secret-token" not in caplog.text
        assert "ConnectError" in caplog.text


class TestNotificationDispatcher:
    @pytest.mark.asyncio
    async def test_no_channels(self):
        assert await NotificationDispatcher().send_text("x") is False

    @pytest.mark.asyncio
    async def test_fans_out_to_every_channel(self):
        first, second = _channel(), _channel()
        dispatcher = NotificationDispatcher([first, second])
        assert await dispatcher.send_approval_request(9.0, 20.0, APPROVE_URL) is True
        first.send_approval_request.assert_awaited_once_with(9.0, 20.0, APPROVE_URL)
        second.send_approval_request.assert_awaited_once_with(9.0, 20.0, APPROVE_URL)

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_stop_others(self):
        broken = _channel()
        broken.send_text = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = _channel()
        dispatcher = NotificationDispatcher([broken, healthy])
        assert await dispatcher.send_text("x") is True
        healthy.send_text.assert_awaited_once_with("x")

    @pytest.mark.asyncio
    async def test_all_channels_fail(self):
        dispatcher = NotificationDispatcher([_channel(False), _channel(False)])
        assert await dispatcher.send_text("x") is False

    def test_add_channel(self):
        dispatcher = NotificationDispatcher()
        dispatcher.add_channel(_channel())
        assert len(dispatcher.channels) == 1
