"""
Manual Trigger Channel

Architectural Intent:
- Admits remote "run a bandwidth check now" requests one at a time
- Capacity one: while a trigger is queued or its check is still running,
  further offers are rejected as busy. Nothing is ever queued behind it.

Design Decisions:
- asyncio.Queue(maxsize=1) with put_nowait; QueueFull means busy
- The unit counts as consumed only when the check it started has finished
- offer() must run on the loop thread; HTTP handler threads use
  offer_threadsafe()
- close() stops draining but lets a running check finish
"""

from __future__ import annotations
from typing import Any, Awaitable, Callable, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)

_TRIGGER = object()


class ManualTriggerChannel:
    """Single-flight admission for manually triggered checks."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._running_check = False
        self._closed = False
        self._current: Optional[asyncio.Task] = None
        self._consumer: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._running_check or self._queue.full()

    def offer(self) -> bool:
        """Try to admit one trigger. Returns False when busy or closed."""
        if self._closed or self._running_check:
            return False
        try:
            self._queue.put_nowait(_TRIGGER)
        except asyncio.QueueFull:
            return False
        logger.info("Manual check admitted")
        return True

    def offer_threadsafe(
        self, loop: asyncio.AbstractEventLoop, timeout: float = 5.0
    ) -> bool:
        """offer() from a thread other than the loop's."""

        async def _offer() -> bool:
            return self.offer()

        return asyncio.run_coroutine_threadsafe(_offer(), loop).result(timeout)

    def start(self, handler: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        """Start draining triggers into handler on the running loop."""
        self._consumer = asyncio.create_task(self.run(handler), name="manual-trigger-consumer")
        return self._consumer

    async def run(self, handler: Callable[[], Awaitable[Any]]) -> None:
        while True:
            await self._queue.get()
            self._running_check = True
            task = asyncio.ensure_future(handler())
            task.add_done_callback(self._check_finished)
            self._current = task
            # wait() leaves the check running if this consumer is cancelled
            await asyncio.wait({task})

    def _check_finished(self, task: asyncio.Future) -> None:
        self._running_check = False
        self._current = None
        self._queue.task_done()
        if task.cancelled():
            logger.warning("Manual check was cancelled")
        elif task.exception() is not None:
            logger.error("Manual check failed: %s", task.exception())

    async def close(self) -> None:
        """Reject new triggers, stop the consumer, wait for a running check."""
        self._closed = True
        if self._consumer is not None:
            self._consumer.cancel()
            await asyncio.gather(self._consumer, return_exceptions=True)
            self._consumer = None
        current = self._current
        if current is not None:
            logger.info("Waiting for the running manual check to finish")
            await asyncio.wait({current})
