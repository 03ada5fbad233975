"""
Notification Dispatcher

Architectural Intent:
- Fans every message out to all configured NotificationPort channels
- Notification is best-effort: a failing channel is logged and skipped, and
  never changes the outcome of a ticket submission

Design Decisions:
- Implements NotificationPort itself, so use cases see a single channel
- Returns True if at least one channel accepted the message
- Channels are called one after another; there are at most a handful
"""

from __future__ import annotations
from typing import Awaitable, Callable, Sequence
import logging

from bandwatch.domain.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Best-effort fan-out over notification channels."""

    def __init__(self, channels: Sequence[NotificationPort] = ()) -> None:
        self._channels = list(channels)

    @property
    def channels(self) -> list[NotificationPort]:
        return list(self._channels)

    def add_channel(self, channel: NotificationPort) -> None:
        self._channels.append(channel)

    async def _fan_out(self, send: Callable[[NotificationPort], Awaitable[bool]]) -> bool:
        if not self._channels:
            logger.debug("No notification channel configured")
            return False
        delivered = False
        for channel in self._channels:
            try:
                delivered = await send(channel) or delivered
            except Exception as e:
                logger.warning(
                    "Notification via %s failed: %s", type(channel).__name__, e
                )
        return delivered

    async def send_text(self, text: str) -> bool:
        return await self._fan_out(lambda channel: channel.send_text(text))

    async def send_approval_request(
        self, speed_mbps: float, threshold_mbps: float, approve_url: str
    ) -> bool:
        return await self._fan_out(
            lambda channel: channel.send_approval_request(
                speed_mbps, threshold_mbps, approve_url
            )
        )
