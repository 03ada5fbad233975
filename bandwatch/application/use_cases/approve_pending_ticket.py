"""
Approve Pending Ticket Use Case

Architectural Intent:
- Turns one approval token into at most one filed ticket
- The token is claimed before any network call, so concurrent clicks on the
  same link cannot both submit
- Submission uses the configuration snapshot taken when the incident was
  detected, not the live configuration

Design Decisions:
- Never raises for business failures; returns an ApprovalOutcome the
  callback surface renders as a page
- Operators are told about the result through notifications (best-effort)
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional
import logging

from bandwatch.application.use_cases.check_incident import TicketClientFactory
from bandwatch.domain.errors import (
    BandwatchError,
    DuplicateApprovalError,
    InvalidTokenError,
)
from bandwatch.domain.ports.notification_port import NotificationPort
from bandwatch.infrastructure.approval_store import ApprovalStore
from bandwatch.infrastructure.telemetry.otel_exporter import OTELExporter

logger = logging.getLogger(__name__)


class ApprovalStatus(Enum):
    SUBMITTED = "submitted"
    SUBMIT_FAILED = "submit_failed"
    INVALID_TOKEN = "invalid_token"
    ALREADY_USED = "already_used"


@dataclass(frozen=True)
class ApprovalOutcome:
    status: ApprovalStatus
    message: str
    ticket_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is ApprovalStatus.SUBMITTED


class ApprovePendingTicket:
    def __init__(
        self,
        store: ApprovalStore,
        notifier: NotificationPort,
        ticket_client_factory: TicketClientFactory,
        telemetry: Optional[OTELExporter] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.ticket_client_factory = ticket_client_factory
        self.telemetry = telemetry

    async def execute(self, token: str) -> ApprovalOutcome:
        try:
            snapshot = self.store.claim(token)
        except InvalidTokenError:
            logger.info("Approval with unknown token rejected")
            return ApprovalOutcome(ApprovalStatus.INVALID_TOKEN, "Invalid token")
        except DuplicateApprovalError:
            logger.info("Approval with used token rejected")
            return ApprovalOutcome(
                ApprovalStatus.ALREADY_USED,
                "This ticket was already submitted, no need to approve it again",
            )

        logger.info("Approval received, submitting ticket...")
        try:
            ticket_id = await self.ticket_client_factory(snapshot).submit_ticket()
        except BandwatchError as e:
            msg = f"Ticket submission failed: {e}"
            logger.error(msg)
            self._record(False)
            await self._notify(f"❌ {msg}")
            return ApprovalOutcome(ApprovalStatus.SUBMIT_FAILED, msg)

        msg = f"Ticket submitted, ticket id: {ticket_id}"
        logger.info(msg)
        self._record(True)
        await self._notify(f"✅ {msg}")
        return ApprovalOutcome(ApprovalStatus.SUBMITTED, msg, ticket_id=ticket_id)

    def _record(self, success: bool) -> None:
        if self.telemetry:
            self.telemetry.record_ticket_submission(success, trigger="approval")

    async def _notify(self, text: str) -> None:
        try:
            await self.notifier.send_text(text)
        except Exception as e:
            logger.warning("Notification failed: %s", e)
