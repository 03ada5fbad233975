"""Tests for the ApprovePendingTicket use case."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from bandwatch.application.use_cases.approve_pending_ticket import (
    ApprovalStatus,
    ApprovePendingTicket,
)
from bandwatch.domain.errors import TransportError
from bandwatch.infrastructure.approval_store import ApprovalStore
from bandwatch.infrastructure.config import BandwatchConfig


def _notifier():
    notifier = MagicMock()
    notifier.send_text = AsyncMock(return_value=True)
    return notifier


def _factory(ticket_id="T-1", error=None):
    client = MagicMock()
    client.submit_ticket = AsyncMock(return_value=ticket_id, side_effect=error)
    return MagicMock(return_value=client)


class TestApprove:
    @pytest.mark.asyncio
    async def test_submits_with_snapshot(self):
        store = ApprovalStore()
        snapshot = BandwatchConfig().with_ticket_text("t", "d")
        token = store.register(snapshot)
        factory = _factory("T-7")
        notifier = _notifier()

        outcome = await ApprovePendingTicket(store, notifier, factory).execute(token)

        assert outcome.success is True
        assert outcome.status is ApprovalStatus.SUBMITTED
        assert outcome.ticket_id == "T-7"
        assert "T-7" in outcome.message
        factory.assert_called_once_with(snapshot)
        assert "✅" in notifier.send_text.await_args.args[0]

    @pytest.mark.asyncio
    async def test_second_approval_does_not_submit_again(self):
        store = ApprovalStore()
        token = store.register(BandwatchConfig())
        factory = _factory()
        use_case = ApprovePendingTicket(store, _notifier(), factory)

        await use_case.execute(token)
        outcome = await use_case.execute(token)

        assert outcome.status is ApprovalStatus.ALREADY_USED
        assert "already submitted" in outcome.message
        assert factory.call_count == 1

    @pytest.mark.asyncio
    async def test_unknown_token(self):
        factory = _factory()
        outcome = await ApprovePendingTicket(ApprovalStore(), _notifier(), factory).execute("nope")
        assert outcome.status is ApprovalStatus.INVALID_TOKEN
        assert outcome.message == "Invalid token"
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_submit_failure_consumes_token(self):
        store = ApprovalStore()
        token = store.register(BandwatchConfig())
        notifier = _notifier()
        use_case = ApprovePendingTicket(
            store, notifier, _factory(error=TransportError("timeout"))
        )

        outcome = await use_case.execute(token)
        assert outcome.status is ApprovalStatus.SUBMIT_FAILED
        assert "timeout" in outcome.message
        assert "❌" in notifier.send_text.await_args.args[0]

        again = await use_case.execute(token)
        assert again.status is ApprovalStatus.ALREADY_USED

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_change_outcome(self):
        store = ApprovalStore()
        token = store.register(BandwatchConfig())
        notifier = _notifier()
        notifier.send_text = AsyncMock(side_effect=RuntimeError("down"))
        outcome = await ApprovePendingTicket(store, notifier, _factory()).execute(token)
        assert outcome.success is True

    @pytest.mark.asyncio
    async def test_records_telemetry(self):
        store = ApprovalStore()
        token = store.register(BandwatchConfig())
        telemetry = MagicMock()
        await ApprovePendingTicket(store, _notifier(), _factory(), telemetry).execute(token)
        telemetry.record_ticket_submission.assert_called_once_with(True, trigger="approval")
