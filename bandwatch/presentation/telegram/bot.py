"""
bandwatch Telegram Command Bot

Architectural Intent:
- Answers commands from the one authorized chat, long-polling getUpdates
- /check goes through the ManualTriggerChannel, so a check started from the
  chat, the callback server and the schedule obey the same single-flight rule
- Inline "submit" buttons resolve through the ApprovalStore and
  ApprovePendingTicket, so a double tap files at most one ticket

Commands:
    /help     list commands
    /check    admit one bandwidth check, results follow by notification
    /speed    measure download speed only
    /submit   confirm, then file a ticket without measuring
    /status   uptime, last check, threshold and schedule

Callback buttons:
    approve:<token>   claim the token and file its ticket
    cancel:<token>    retire the token without filing anything

Design Decisions:
- Each update is handled in its own task so a slow speed test does not
  stall polling; close() waits for running handlers
- Updates from any other chat are logged and ignored
- Replies are best-effort; a failed reply never aborts a command
- Bot API errors never log the request URL, which embeds the bot token
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, UTC
from typing import Any, Awaitable, Callable, Optional

import httpx

from bandwatch.application.use_cases.approve_pending_ticket import (
    ApprovalStatus,
    ApprovePendingTicket,
)
from bandwatch.application.use_cases.check_incident import CheckIncident
from bandwatch.domain.errors import BandwatchError, TransportError, UpstreamApiError
from bandwatch.domain.ports.bandwidth_probe_port import BandwidthProbePort
from bandwatch.domain.services import ticket_templates
from bandwatch.infrastructure.adapters.telegram_adapter import (
    API_BASE,
    APPROVE_PREFIX,
    CANCEL_PREFIX,
    approval_keyboard,
)
from bandwatch.infrastructure.approval_store import ApprovalStore
from bandwatch.infrastructure.config import BandwatchConfig
from bandwatch.infrastructure.trigger_channel import ManualTriggerChannel

logger = logging.getLogger(__name__)

BOT_COMMANDS: tuple[dict[str, str], ...] = (
    {"command": "check", "description": "Run a bandwidth check now (and file a ticket if slow)"},
    {"command": "speed", "description": "Measure download speed only"},
    {"command": "submit", "description": "Submit a ticket without measuring"},
    {"command": "status", "description": "Show current status"},
    {"command": "help", "description": "Show this help"},
)

HELP_TEXT = "🤖 bandwatch\n\n" + "\n".join(
    f"/{c['command']} - {c['description']}" for c in BOT_COMMANDS
)

# Extra seconds on top of the long-poll timeout before httpx gives up
POLL_GRACE_SECONDS = 10.0


def chat_id_of(message: Any) -> Optional[str]:
    if not isinstance(message, dict):
        return None
    chat = message.get("chat")
    if not isinstance(chat, dict) or chat.get("id") is None:
        return None
    return str(chat["id"])


def parse_command(text: Any) -> Optional[str]:
    """Command name from text like "/Check@bandwatch_bot now" ("check"), else None."""
    if not isinstance(text, str) or not text.startswith("/"):
        return None
    command = text.split()[0][1:].split("@", 1)[0].lower()
    return command or None


class TelegramCommandBot:
    """Long-polling Telegram command handler."""

    def __init__(
        self,
        config: BandwatchConfig,
        probe: BandwidthProbePort,
        store: ApprovalStore,
        trigger: ManualTriggerChannel,
        check_incident: CheckIncident,
        approve: ApprovePendingTicket,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
        retry_delay: float = 5.0,
        timeout_seconds: float = 10.0,
    ) -> None:
        notifications = config.notifications
        self._config = config
        self._bot_token = notifications.telegram_bot_token
        self._chat_id = str(notifications.telegram_chat_id)
        self._poll_timeout = notifications.telegram_poll_timeout
        self._probe = probe
        self._store = store
        self._trigger = trigger
        self._check = check_incident
        self._approve = approve
        self._transport = transport
        self._clock = clock or (lambda: datetime.now(UTC))
        self._rng = rng or random.Random()
        self._retry_delay = retry_delay
        self._timeout = timeout_seconds

        self._client: Optional[httpx.AsyncClient] = None
        self._poller: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._running = False
        self._offset = 0

        self.started_at = self._clock()
        self.last_speed: Optional[float] = None
        self.last_speed_at: Optional[datetime] = None

        self._commands: dict[str, Callable[[str], Awaitable[None]]] = {
            "help": self.cmd_help,
            "check": self.cmd_check,
            "speed": self.cmd_speed,
            "submit": self.cmd_submit,
            "status": self.cmd_status,
        }

    # ------------------------------------------------------------------
    # Bot API

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, timeout=self._timeout)
        return self._client

    async def call(
        self,
        method: str,
        payload: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Call one Bot API method and return its result field.

        Raises:
            TransportError: no HTTP response
            UpstreamApiError: non-2xx status or ok != true
        """
        url = f"{API_BASE}/bot{self._bot_token}/{method}"
        try:
            response = await self._http().post(
                url, json=payload or {}, timeout=timeout or self._timeout
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Telegram {method} failed: {type(e).__name__}") from None

        try:
            body = response.json()
        except ValueError:
            body = None
        if not response.is_success or not isinstance(body, dict) or body.get("ok") is not True:
            description = body.get("description") if isinstance(body, dict) else None
            raise UpstreamApiError(
                str(description or response.text),
                action=method,
                status_code=response.status_code,
            )
        return body.get("result")

    async def reply(
        self, chat_id: str, text: str, reply_markup: Optional[dict[str, Any]] = None
    ) -> bool:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        try:
            await self.call("sendMessage", payload)
        except BandwatchError as e:
            logger.warning("Telegram reply failed: %s", e)
            return False
        return True

    async def answer(self, query_id: Any, text: Optional[str] = None) -> None:
        if query_id is None:
            return
        payload: dict[str, Any] = {"callback_query_id": query_id}
        if text:
            payload["text"] = text
        try:
            await self.call("answerCallbackQuery", payload)
        except BandwatchError as e:
            logger.warning("Telegram callback answer failed: %s", e)

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> asyncio.Task:
        """Start polling on the running loop."""
        self._poller = asyncio.create_task(self.run(), name="telegram-command-bot")
        return self._poller

    async def run(self) -> None:
        self._running = True
        try:
            me = await self.call("getMe")
        except BandwatchError as e:
            logger.error("Telegram bot not started, getMe failed: %s", e)
            self._running = False
            return
        username = me.get("username") if isinstance(me, dict) else None
        logger.info("Telegram bot started: @%s", username or "unknown")

        try:
            await self.call("setMyCommands", {"commands": list(BOT_COMMANDS)})
        except BandwatchError as e:
            logger.warning("Could not register the bot command menu: %s", e)

        while self._running:
            try:
                updates = await self.poll_once()
            except BandwatchError as e:
                logger.warning("Telegram polling failed: %s", e)
                await asyncio.sleep(self._retry_delay)
                continue
            for update in updates:
                self._spawn(self.handle_update(update))

    async def poll_once(self) -> list[dict[str, Any]]:
        """One getUpdates round trip. Acknowledges what it returns."""
        result = await self.call(
            "getUpdates",
            {
                "offset": self._offset,
                "timeout": self._poll_timeout,
                "allowed_updates": ["message", "callback_query"],
            },
            timeout=self._poll_timeout + POLL_GRACE_SECONDS,
        )
        if not isinstance(result, list):
            return []
        updates = [u for u in result if isinstance(u, dict)]
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self._offset = max(self._offset, update_id + 1)
        return updates

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Telegram update handler failed: %s", task.exception())

    def stop(self) -> None:
        """Leave the polling loop after the current round trip."""
        self._running = False

    async def close(self) -> None:
        """Stop polling, wait for running handlers, release the HTTP client."""
        self.stop()
        if self._poller is not None:
            self._poller.cancel()
            await asyncio.gather(self._poller, return_exceptions=True)
            self._poller = None
        if self._tasks:
            logger.info("Waiting for %d Telegram command(s) to finish", len(self._tasks))
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Dispatch

    def is_authorized(self, chat_id: Optional[str]) -> bool:
        return chat_id is not None and chat_id == self._chat_id

    async def handle_update(self, update: dict[str, Any]) -> None:
        message = update.get("message")
        if isinstance(message, dict):
            await self.handle_message(message)
            return
        query = update.get("callback_query")
        if isinstance(query, dict):
            await self.handle_callback(query)

    async def handle_message(self, message: dict[str, Any]) -> None:
        command = parse_command(message.get("text"))
        handler = self._commands.get(command) if command else None
        if handler is None:
            return
        chat_id = chat_id_of(message)
        if not self.is_authorized(chat_id):
            logger.warning("Ignoring /%s from unauthorized chat %s", command, chat_id)
            return
        logger.info("Telegram command /%s", command)
        await handler(chat_id)

    async def handle_callback(self, query: dict[str, Any]) -> None:
        query_id = query.get("id")
        chat_id = chat_id_of(query.get("message"))
        if not self.is_authorized(chat_id):
            logger.warning("Ignoring button press from unauthorized chat %s", chat_id)
            await self.answer(query_id)
            return

        data = query.get("data")
        if not isinstance(data, str):
            await self.answer(query_id)
        elif data.startswith(CANCEL_PREFIX):
            await self._cancel(chat_id, query_id, data[len(CANCEL_PREFIX):])
        elif data.startswith(APPROVE_PREFIX):
            await self._approve_token(chat_id, query_id, data[len(APPROVE_PREFIX):])
        else:
            await self.answer(query_id)

    async def _cancel(self, chat_id: str, query_id: Any, token: str) -> None:
        if self._store.consume(token) is None:
            await self.answer(query_id, "Already handled")
            await self.reply(chat_id, "⚠️ This request was already handled")
            return
        logger.info("Pending ticket cancelled from Telegram")
        await self.answer(query_id, "Cancelled")
        await self.reply(chat_id, "❌ Cancelled")

    async def _approve_token(self, chat_id: str, query_id: Any, token: str) -> None:
        await self.answer(query_id, "Submitting...")
        outcome = await self._approve.execute(token)
        # Submitted and failed outcomes reach this chat through the notifier
        if outcome.status is ApprovalStatus.ALREADY_USED:
            await self.reply(chat_id, "⚠️ This request was already handled")
        elif outcome.status is ApprovalStatus.INVALID_TOKEN:
            await self.reply(chat_id, f"⚠️ {outcome.message}")

    # ------------------------------------------------------------------
    # Commands

    async def cmd_help(self, chat_id: str) -> None:
        await self.reply(chat_id, HELP_TEXT)

    async def cmd_check(self, chat_id: str) -> None:
        threshold = self._config.monitor.speed_threshold
        if self._trigger.offer():
            await self.reply(
                chat_id,
                f"⏳ Bandwidth check started (threshold: {threshold:g} Mbps), "
                "results follow by notification",
            )
        else:
            await self.reply(chat_id, "A check is already running, try again later")

    async def cmd_speed(self, chat_id: str) -> None:
        await self.reply(chat_id, "⏳ Measuring download speed...")
        try:
            speed = await self._probe.measure()
        except BandwatchError as e:
            await self.reply(chat_id, f"❌ Speed test failed: {e}")
            return
        self.last_speed = speed
        self.last_speed_at = self._clock()
        await self.reply(chat_id, f"📊 Download speed: {speed:.2f} Mbps")

    async def cmd_submit(self, chat_id: str) -> None:
        speed = self.latest_speed()
        snapshot = self._config.with_ticket_text(
            ticket_templates.random_title(self._rng),
            ticket_templates.random_description(speed or 0.0, self._rng),
        )
        token = self._store.register(snapshot)
        await self.reply(
            chat_id,
            "⚠️ Skip the speed test and submit a ticket now?",
            reply_markup=approval_keyboard(token, "✅ Confirm"),
        )

    async def cmd_status(self, chat_id: str) -> None:
        await self.reply(chat_id, self.status_text())

    # ------------------------------------------------------------------
    # Status

    def latest_speed(self) -> Optional[float]:
        """Most recent measured speed from either /speed or a full check."""
        samples = [(self.last_speed_at, self.last_speed)]
        report = self._check.last_report
        if report is not None:
            samples.append((self._check.last_checked_at, report.speed_mbps))
        known = [(at, speed) for at, speed in samples if at is not None and speed is not None]
        if not known:
            return None
        return max(known, key=lambda sample: sample[0])[1]

    def status_text(self) -> str:
        minutes = int((self._clock() - self.started_at).total_seconds()) // 60
        hours, minutes = divmod(minutes, 60)

        report = self._check.last_report
        checked_at = self._check.last_checked_at
        if report is None or checked_at is None:
            last_check = "none yet"
        else:
            last_check = f"{checked_at:%Y-%m-%d %H:%M:%S} UTC ({report.outcome.value})"
        speed = self.latest_speed()
        monitor = self._config.monitor

        return "\n".join(
            [
                "📊 Status",
                "",
                f"Uptime: {hours}h {minutes}m",
                f"Last check: {last_check}",
                f"Last speed: {f'{speed:.2f} Mbps' if speed is not None else 'not measured yet'}",
                f"Speed threshold: {monitor.speed_threshold:g} Mbps",
                f"Auto submit: {'on' if monitor.auto_submit else 'off'}",
                f"Schedule: {monitor.cron_expression}",
                f"Pending approvals: {self._store.pending_count}",
                f"Check running: {'yes' if self._trigger.busy else 'no'}",
            ]
        )
