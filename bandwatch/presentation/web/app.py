"""
bandwatch Callback Server

Architectural Intent:
- Lightweight web server built on Python stdlib (http.server + asyncio).
- Lets a human approve a pending ticket by opening a link, and lets a remote
  caller request an immediate bandwidth check.
- Every business outcome is a 200 page with a human-readable message; remote
  callers never see a raw protocol error for a rejected token or a busy check.

API Surface:
    GET /approve?token=<t>&secret=<s>  -> submit the pending ticket (HTML)
    GET /check?secret=<s>              -> admit one bandwidth check or report busy (HTML)
    GET /health                        -> JSON liveness and counters

Threading Model:
    ThreadingHTTPServer runs in a background thread and serves each request on
    its own thread. Handlers hand async work to the main asyncio event loop
    with run_coroutine_threadsafe and block their own thread until it is done,
    so the loop stays free for the scheduler and the trigger consumer.
"""

from __future__ import annotations

import asyncio
import html
import json
import logging
import threading
from http import HTTPStatus
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from bandwatch.application.use_cases.approve_pending_ticket import (
    ApprovalStatus,
    ApprovePendingTicket,
)
from bandwatch.domain.value_objects.secret_policy import Open, SecretPolicy
from bandwatch.infrastructure.approval_store import ApprovalStore
from bandwatch.infrastructure.trigger_channel import ManualTriggerChannel

logger = logging.getLogger(__name__)

# Upper bound for one approval (catalog lookups plus CreateTicket)
APPROVAL_TIMEOUT_SECONDS = 120.0

_PAGE_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>bandwatch</title>
  <style>
    body {{ font-family: system-ui, sans-serif; background: #0f1117; color: #e0e0e0;
           display: flex; justify-content: center; padding-top: 4rem; }}
    .card {{ background: #1a1d28; border: 1px solid #2a2d3a; border-radius: 8px;
            padding: 1.5rem 2rem; max-width: 640px; }}
    h2 {{ font-size: 1.2rem; }}
    .ok {{ color: #4caf50; }}
    .warn {{ color: #ff9800; }}
    .error {{ color: #f44336; }}
  </style>
</head>
<body>
  <div class="card"><h2 class="{css}">{icon} {message}</h2></div>
</body>
</html>
"""

_ICONS = {"ok": "✅", "warn": "⚠️", "error": "❌"}


def render_page(message: str, css: str = "ok") -> str:
    return _PAGE_HTML.format(css=css, icon=_ICONS.get(css, ""), message=html.escape(message))


# ---------------------------------------------------------------------------
# Request handler
# ---------------------------------------------------------------------------

class CallbackRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for approval and manual-check callbacks.

    Attributes on the *server* instance (set by BandwatchWebApp):
        approve:  ApprovePendingTicket -- approval use case
        store:    ApprovalStore        -- for /health counters
        trigger:  ManualTriggerChannel -- single-flight check admission
        policy:   SecretPolicy         -- gate for /approve and /check
        loop:     asyncio event loop that owns the async work
    """

    # Silence per-request log lines from BaseHTTPRequestHandler; the query
    # string may carry the shared secret
    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug("web: %s %s", self.command, urlparse(self.path).path)

    # ---- routing -----------------------------------------------------------

    def do_GET(self) -> None:  # noqa: N802
        """Route GET requests."""
        parsed = urlparse(self.path)
        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        if parsed.path == "/approve":
            self._handle_approve(params)
        elif parsed.path == "/check":
            self._handle_check(params)
        elif parsed.path == "/health":
            self._serve_health()
        else:
            self._send_json({"error": "not found"}, HTTPStatus.NOT_FOUND)

    # ---- endpoint implementations ------------------------------------------

    def _authorized(self, params: dict[str, str]) -> bool:
        policy: SecretPolicy = self.server.policy  # type: ignore[attr-defined]
        if policy.authorize(params.get("secret")):
            return True
        logger.warning("Rejected %s request with a wrong or missing secret", self.command)
        self._send_html(render_page("Forbidden: wrong or missing secret", "error"))
        return False

    def _handle_approve(self, params: dict[str, str]) -> None:
        if not self._authorized(params):
            return
        token = params.get("token")
        if not token:
            self._send_html(render_page("Missing token parameter", "error"))
            return

        approve: ApprovePendingTicket = self.server.approve  # type: ignore[attr-defined]
        loop: asyncio.AbstractEventLoop = self.server.loop  # type: ignore[attr-defined]
        try:
            outcome = asyncio.run_coroutine_threadsafe(
                approve.execute(token), loop
            ).result(APPROVAL_TIMEOUT_SECONDS)
        except Exception as exc:
            logger.error("Approval handling failed: %s", exc)
            self._send_html(render_page(f"Approval failed: {exc}", "error"))
            return

        if outcome.success:
            css = "ok"
        elif outcome.status is ApprovalStatus.ALREADY_USED:
            css = "warn"
        else:
            css = "error"
        self._send_html(render_page(outcome.message, css))

    def _handle_check(self, params: dict[str, str]) -> None:
        if not self._authorized(params):
            return
        trigger: ManualTriggerChannel = self.server.trigger  # type: ignore[attr-defined]
        loop: asyncio.AbstractEventLoop = self.server.loop  # type: ignore[attr-defined]
        try:
            admitted = trigger.offer_threadsafe(loop)
        except Exception as exc:
            logger.error("Could not queue manual check: %s", exc)
            self._send_html(render_page(f"Could not start a check: {exc}", "error"))
            return

        if admitted:
            self._send_html(render_page("Bandwidth check started, results follow by notification"))
        else:
            self._send_html(render_page("A check is already running, try again later", "warn"))

    def _serve_health(self) -> None:
        store: ApprovalStore = self.server.store  # type: ignore[attr-defined]
        trigger: ManualTriggerChannel = self.server.trigger  # type: ignore[attr-defined]
        self._send_json(
            {
                "status": "ok",
                "pending_approvals": store.pending_count,
                "check_in_flight": trigger.busy,
            }
        )

    # ---- helpers -----------------------------------------------------------

    def _send_html(self, page: str, status: HTTPStatus = HTTPStatus.OK) -> None:
        body = page.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_json(self, data: Any, status: HTTPStatus = HTTPStatus.OK) -> None:
        """Serialize *data* as JSON and send it as the HTTP response."""
        body = json.dumps(data, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


# ---------------------------------------------------------------------------
# Web application wrapper
# ---------------------------------------------------------------------------

class BandwatchWebApp:
    """Async-friendly callback server.

    Usage::

        app = BandwatchWebApp(approve=uc, store=store, trigger=channel)
        await app.start("0.0.0.0", 9876)
        # ... later ...
        await app.stop()
    """

    def __init__(
        self,
        approve: ApprovePendingTicket,
        store: ApprovalStore,
        trigger: ManualTriggerChannel,
        policy: Optional[SecretPolicy] = None,
    ) -> None:
        self.approve = approve
        self.store = store
        self.trigger = trigger
        self.policy = policy or Open()
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> Optional[int]:
        return self._server.server_address[1] if self._server else None

    async def start(self, host: str = "0.0.0.0", port: int = 9876) -> None:
        """Start the server in a background thread.

        The current asyncio event loop is captured so handlers can schedule
        async work back onto it.
        """
        server = ThreadingHTTPServer((host, port), CallbackRequestHandler)
        # Handler threads are joined on stop so in-flight approvals complete
        server.daemon_threads = False
        server.block_on_close = True
        # Attach application state to the server so handlers can access it.
        server.approve = self.approve  # type: ignore[attr-defined]
        server.store = self.store  # type: ignore[attr-defined]
        server.trigger = self.trigger  # type: ignore[attr-defined]
        server.policy = self.policy  # type: ignore[attr-defined]
        server.loop = asyncio.get_running_loop()  # type: ignore[attr-defined]
        self._server = server

        self._thread = threading.Thread(
            target=server.serve_forever,
            daemon=True,
            name="bandwatch-callback",
        )
        self._thread.start()
        logger.info("Callback server started on http://%s:%d", host, self.port)

    async def stop(self) -> None:
        """Stop accepting requests and wait for in-flight ones.

        Runs the blocking shutdown off the loop: handler threads may still need
        the loop to finish their work.
        """
        if self._server is not None:
            await asyncio.to_thread(self._server.shutdown)
            await asyncio.to_thread(self._server.server_close)
            logger.info("Callback server stopped")
            self._server = None
        if self._thread is not None:
            await asyncio.to_thread(self._thread.join, 5)
            self._thread = None
