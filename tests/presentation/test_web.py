"""Tests for the bandwatch callback server.

A real BandwatchWebApp listens on a random port. Requests are made from a
worker thread (asyncio.to_thread) because the handlers hand their work back
to the event loop the test is running on.
"""

import asyncio
import json
import urllib.error
import urllib.request
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from bandwatch.application.use_cases.approve_pending_ticket import ApprovePendingTicket
from bandwatch.domain.value_objects.secret_policy import RequireSecret
from bandwatch.infrastructure.approval_store import ApprovalStore
from bandwatch.infrastructure.config import BandwatchConfig
from bandwatch.infrastructure.trigger_channel import ManualTriggerChannel
from bandwatch.presentation.web.app import BandwatchWebApp, render_page


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

class _BlockingCheck:
    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self):
        self.started.set()
        await self.release.wait()


@pytest.fixture()
def store() -> ApprovalStore:
    return ApprovalStore()


@pytest.fixture()
def ticket_client():
    client = MagicMock()
    client.submit_ticket = AsyncMock(return_value="T-100")
    return client


@pytest.fixture()
def approve_uc(store, ticket_client) -> ApprovePendingTicket:
    notifier = MagicMock()
    notifier.send_text = AsyncMock(return_value=True)
    return ApprovePendingTicket(store, notifier, MagicMock(return_value=ticket_client))


async def _start(approve_uc, store, trigger, policy=None):
    app = BandwatchWebApp(approve=approve_uc, store=store, trigger=trigger, policy=policy)
    # Port 0 lets the OS pick a free port
    await app.start("127.0.0.1", 0)
    return app, f"http://127.0.0.1:{app.port}"


@pytest_asyncio.fixture()
async def web_app(approve_uc, store):
    """Open (no secret) server; yields (app, base_url, trigger, check)."""
    trigger = ManualTriggerChannel()
    check = _BlockingCheck()
    trigger.start(check)
    app, base = await _start(approve_uc, store, trigger)
    yield app, base, trigger, check
    check.release.set()
    await app.stop()
    await trigger.close()


@pytest_asyncio.fixture()
async def secured_app(approve_uc, store):
    """Server requiring secret 's3cret'; yields (app, base_url)."""
    trigger = ManualTriggerChannel()
    app, base = await _start(approve_uc, store, trigger, RequireSecret("s3cret"))
    yield app, base
    await app.stop()
    await trigger.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get(url: str) -> tuple[int, dict | str]:
    """Send a GET request and return (status_code, parsed_body)."""
    try:
        with urllib.request.urlopen(url, timeout=10) as resp:
            body = resp.read().decode()
            if "json" in resp.headers.get("Content-Type", ""):
                return resp.status, json.loads(body)
            return resp.status, body
    except urllib.error.HTTPError as e:
        body = e.read().decode()
        try:
            return e.code, json.loads(body)
        except json.JSONDecodeError:
            return e.code, body


async def _aget(url: str) -> tuple[int, dict | str]:
    return await asyncio.to_thread(_get, url)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestApprove:
    """GET /approve endpoint."""

    @pytest.mark.asyncio
    async def test_valid_token_submits(self, web_app, store, ticket_client):
        _, base, _, _ = web_app
        token = store.register(BandwatchConfig())

        status, body = await _aget(f"{base}/approve?token={token}")

        assert status == 200
        assert "T-100" in body
        ticket_client.submit_ticket.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_repeat_click_is_already_submitted(self, web_app, store, ticket_client):
        _, base, _, _ = web_app
        token = store.register(BandwatchConfig())

        await _aget(f"{base}/approve?token={token}")
        status, body = await _aget(f"{base}/approve?token={token}")

        assert status == 200
        assert "already submitted" in body
        assert ticket_client.submit_ticket.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_clicks_submit_once(self, web_app, store, ticket_client):
        _, base, _, _ = web_app
        token = store.register(BandwatchConfig())

        results = await asyncio.gather(
            *(_aget(f"{base}/approve?token={token}") for _ in range(5))
        )

        assert all(status == 200 for status, _ in results)
        assert sum("T-100" in body for _, body in results) == 1
        assert ticket_client.submit_ticket.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_token(self, web_app):
        _, base, _, _ = web_app
        status, body = await _aget(f"{base}/approve?token=bogus")
        assert status == 200
        assert "Invalid token" in body

    @pytest.mark.asyncio
    async def test_missing_token(self, web_app):
        _, base, _, _ = web_app
        status, body = await _aget(f"{base}/approve")
        assert status == 200
        assert "Missing token" in body

    @pytest.mark.asyncio
    async def test_submit_failure_page(self, web_app, store, ticket_client):
        from bandwatch.domain.errors import UpstreamApiError

        ticket_client.submit_ticket.side_effect = UpstreamApiError(
            "Forbidden", action="CreateTicket"
        )
        _, base, _, _ = web_app
        token = store.register(BandwatchConfig())
        status, body = await _aget(f"{base}/approve?token={token}")
        assert status == 200
        assert "Ticket submission failed" in body


class TestSecret:
    @pytest.mark.asyncio
    async def test_wrong_secret_forbidden(self, secured_app, store, ticket_client):
        _, base = secured_app
        token = store.register(BandwatchConfig())

        status, body = await _aget(f"{base}/approve?token={token}&secret=nope")

        assert status == 200
        assert "Forbidden" in body
        ticket_client.submit_ticket.assert_not_awaited()
        assert store.pending_count == 1

    @pytest.mark.asyncio
    async def test_missing_secret_forbidden_on_check(self, secured_app):
        _, base = secured_app
        status, body = await _aget(f"{base}/check")
        assert status == 200
        assert "Forbidden" in body

    @pytest.mark.asyncio
    async def test_correct_secret(self, secured_app, store):
        _, base = secured_app
        token = store.register(BandwatchConfig())
        status, body = await _aget(f"{base}/approve?token={token}&secret=s3cret")
        assert status == 200
        assert "T-100" in body


class TestCheck:
    """GET /check endpoint."""

    @pytest.mark.asyncio
    async def test_busy_while_processing_then_accepts(self, web_app):
        _, base, trigger, check = web_app

        status, body = await _aget(f"{base}/check")
        assert status == 200
        assert "check started" in body
        await asyncio.wait_for(check.started.wait(), 5)

        status, body = await _aget(f"{base}/check")
        assert status == 200
        assert "already running" in body

        check.release.set()
        for _ in range(100):
            if not trigger.busy:
                break
            await asyncio.sleep(0.01)

        status, body = await _aget(f"{base}/check")
        assert "check started" in body


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_json(self, web_app, store):
        _, base, _, _ = web_app
        store.register(BandwatchConfig())
        status, data = await _aget(f"{base}/health")
        assert status == 200
        assert data == {"status": "ok", "pending_approvals": 1, "check_in_flight": False}

    @pytest.mark.asyncio
    async def test_unknown_path_404(self, web_app):
        _, base, _, _ = web_app
        status, data = await _aget(f"{base}/nope")
        assert status == 404
        assert data == {"error": "not found"}


class TestRenderPage:
    def test_message_is_escaped(self):
        page = render_page("<script>alert(1)</script>", "error")
        assert "<script>" not in page
        assert "&lt;script&gt;" in page

    def test_lifecycle_port(self):
        app = BandwatchWebApp(approve=MagicMock(), store=ApprovalStore(), trigger=MagicMock())
        assert app.port is None
