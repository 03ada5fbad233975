"""
Telegram Notification Adapter

Architectural Intent:
- Implements NotificationPort through the Telegram Bot API sendMessage call
- Approval requests carry the approval link as an inline URL button
- With bot commands enabled the buttons are callback buttons instead, answered
  by the command bot through the ApprovalStore (presentation/telegram)

Design Decisions:
- Callback data is "approve:<token>" / "cancel:<token>"; a 43-character token
  keeps it under Telegram's 64-byte limit
- Failures are logged and reported as False, never raised
"""

from __future__ import annotations
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit
import logging

import httpx

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"

APPROVE_PREFIX = "approve:"
CANCEL_PREFIX = "cancel:"


def approval_keyboard(token: str, submit_label: str = "✅ Submit ticket") -> dict[str, Any]:
    """Inline keyboard whose buttons are answered by the command bot."""
    return {
        "inline_keyboard": [[
            {"text": submit_label, "callback_data": f"{APPROVE_PREFIX}{token}"},
            {"text": "❌ Cancel", "callback_data": f"{CANCEL_PREFIX}{token}"},
        ]]
    }


def token_from_url(approve_url: str) -> Optional[str]:
    tokens = parse_qs(urlsplit(approve_url).query).get("token")
    return tokens[0] if tokens else None


class TelegramAdapter:
    """Telegram Bot API adapter."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout_seconds: float = 10.0,
        interactive: bool = False,
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._transport = transport
        self._timeout = timeout_seconds
        self._interactive = interactive

    @property
    def interactive(self) -> bool:
        return self._interactive

    async def _send_message(self, payload: dict[str, Any], kind: str) -> bool:
        url = f"{API_BASE}/bot{self._bot_token}/sendMessage"
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            ) as client:
                response = await client.post(url, json={"chat_id": self._chat_id, **payload})
        except httpx.HTTPError as e:
            # the exception text can carry the URL, and so the bot token
            logger.error("Telegram %s failed: %s", kind, type(e).__name__)
            return False

        ok = response.is_success
        if ok:
            try:
                ok = bool(response.json().get("ok"))
            except ValueError:
                ok = False
        if not ok:
            logger.error(
                "Telegram %s rejected (%s): %s", kind, response.status_code, response.text
            )
            return False

        logger.info("Telegram %s sent", kind)
        return True

    async def send_text(self, text: str) -> bool:
        return await self._send_message({"text": text}, "message")

    async def send_approval_request(
        self, speed_mbps: float, threshold_mbps: float, approve_url: str
    ) -> bool:
        text = (
            "⚠️ Bandwidth throttling alert\n\n"
            f"Download speed: {speed_mbps:.2f} Mbps\n"
            f"Threshold: {threshold_mbps:g} Mbps\n\n"
            "Submit a support ticket?"
        )
        token = token_from_url(approve_url) if self._interactive else None
        if token:
            markup = approval_keyboard(token)
        else:
            markup = {"inline_keyboard": [[{"text": "✅ Submit ticket", "url": approve_url}]]}
        return await self._send_message(
            {"text": text, "reply_markup": markup}, "approval request"
        )
