"""
Feishu Notification Adapter

Architectural Intent:
- Implements NotificationPort for a Feishu (Lark) group-bot webhook
- Plain text for status messages, an interactive card with a
  "submit ticket" button for approval requests

Design Decisions:
- httpx.AsyncClient per message; tests inject an httpx.MockTransport
- Failures are logged and reported as False, never raised
- Card colour follows the alert: red header for throttling
"""

from __future__ import annotations
from typing import Any, Optional
import logging

import httpx

logger = logging.getLogger(__name__)


def build_text_payload(text: str) -> dict[str, Any]:
    return {"msg_type": "text", "content": {"text": text}}


def build_approval_card(
    speed_mbps: float, threshold_mbps: float, approve_url: str
) -> dict[str, Any]:
    """Interactive card whose single button opens the approval link."""
    return {
        "msg_type": "interactive",
        "card": {
            "header": {
                "title": {"tag": "plain_text", "content": "⚠️ Bandwidth throttling alert"},
                "template": "red",
            },
            "elements": [
                {
                    "tag": "div",
                    "text": {
                        "tag": "lark_md",
                        "content": (
                            f"**Download speed**: {speed_mbps:.2f} Mbps\n"
                            f"**Threshold**: {threshold_mbps:g} Mbps\n"
                            "**Status**: below threshold, probably throttled"
                        ),
                    },
                },
                {"tag": "hr"},
                {
                    "tag": "action",
                    "actions": [
                        {
                            "tag": "button",
                            "text": {"tag": "plain_text", "content": "Submit ticket"},
                            "url": approve_url,
                            "type": "primary",
                        }
                    ],
                },
            ],
        },
    }


class FeishuAdapter:
    """Feishu group-bot webhook adapter."""

    def __init__(
        self,
        webhook_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._webhook_url = webhook_url
        self._transport = transport
        self._timeout = timeout_seconds

    async def _post(self, payload: dict[str, Any], kind: str) -> bool:
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            ) as client:
                response = await client.post(self._webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Feishu %s failed: %s", kind, e)
            return False

        if not response.is_success:
            logger.error(
                "Feishu %s rejected (%s): %s", kind, response.status_code, response.text
            )
            return False

        logger.info("Feishu %s sent", kind)
        return True

    async def send_text(self, text: str) -> bool:
        return await self._post(build_text_payload(text), "message")

    async def send_approval_request(
        self, speed_mbps: float, threshold_mbps: float, approve_url: str
    ) -> bool:
        return await self._post(
            build_approval_card(speed_mbps, threshold_mbps, approve_url), "approval card"
        )
