"""
Check Incident Use Case

Architectural Intent:
- Measures bandwidth once and decides what to do about it
- Below threshold, files the ticket directly (auto-submit), registers it for
  human approval (callback configured), or asks the operator to act manually
- Never raises for measurement, signing, transport or provider errors: the
  outcome is reported through notifications and returned as an IncidentReport
- The latest report is kept for status queries (Telegram /status)

Decision table (speed below threshold):
    auto_submit  callback_url   action
    on           any            submit now
    off          set            register approval, send approval link
    off          empty          notify, manual action required
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlencode
import logging
import random

from bandwatch.domain.errors import BandwatchError
from bandwatch.domain.ports.bandwidth_probe_port import BandwidthProbePort
from bandwatch.domain.ports.notification_port import NotificationPort
from bandwatch.domain.ports.support_ticket_port import SupportTicketPort
from bandwatch.domain.services import ticket_templates
from bandwatch.domain.value_objects.secret_policy import SecretPolicy
from bandwatch.infrastructure.approval_store import ApprovalStore
from bandwatch.infrastructure.config import BandwatchConfig
from bandwatch.infrastructure.telemetry.otel_exporter import OTELExporter

logger = logging.getLogger(__name__)

TicketClientFactory = Callable[[BandwatchConfig], SupportTicketPort]


class IncidentOutcome(Enum):
    NORMAL = "normal"
    SUBMITTED = "submitted"
    SUBMIT_FAILED = "submit_failed"
    AWAITING_APPROVAL = "awaiting_approval"
    MANUAL_ACTION_REQUIRED = "manual_action_required"
    MEASUREMENT_FAILED = "measurement_failed"


@dataclass(frozen=True)
class IncidentReport:
    outcome: IncidentOutcome
    speed_mbps: Optional[float] = None
    ticket_id: Optional[str] = None
    approve_url: Optional[str] = None
    error: Optional[str] = None


def build_approve_url(callback_url: str, token: str, secret: Optional[str] = None) -> str:
    """Approval link for a token, carrying the shared secret when one is set."""
    params = {"token": token}
    if secret:
        params["secret"] = secret
    return f"{callback_url.rstrip('/')}/approve?{urlencode(params)}"


class CheckIncident:
    def __init__(
        self,
        config: BandwatchConfig,
        probe: BandwidthProbePort,
        store: ApprovalStore,
        notifier: NotificationPort,
        ticket_client_factory: TicketClientFactory,
        telemetry: Optional[OTELExporter] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.probe = probe
        self.store = store
        self.notifier = notifier
        self.ticket_client_factory = ticket_client_factory
        self.telemetry = telemetry
        self.rng = rng or random.Random()
        self.last_report: Optional[IncidentReport] = None
        self.last_checked_at: Optional[datetime] = None

    async def execute(self) -> IncidentReport:
        span = self.telemetry.start_span("bandwatch.check_incident") if self.telemetry else None
        try:
            return await self._check()
        finally:
            if self.telemetry:
                self.telemetry.end_span(span)

    async def _check(self) -> IncidentReport:
        threshold = self.config.monitor.speed_threshold
        logger.info("Starting bandwidth check, threshold: %g Mbps", threshold)

        try:
            speed = await self.probe.measure()
        except BandwatchError as e:
            logger.error("Bandwidth measurement failed: %s", e)
            await self._notify(
                f"❌ Speed test failed: {e}\nPlease check the bandwidth manually to be safe."
            )
            return self._finish(IncidentReport(IncidentOutcome.MEASUREMENT_FAILED, error=str(e)))

        if self.telemetry:
            self.telemetry.record_speed_sample(speed, threshold)

        if speed >= threshold:
            msg = f"✅ Speed normal: {speed:.2f} Mbps (threshold: {threshold:g} Mbps)"
            logger.info(msg)
            await self._notify(msg)
            return self._finish(IncidentReport(IncidentOutcome.NORMAL, speed_mbps=speed))

        logger.warning("Download speed %.2f Mbps is below threshold %g Mbps", speed, threshold)
        snapshot = self.config.with_ticket_text(
            ticket_templates.random_title(self.rng),
            ticket_templates.random_description(speed, self.rng),
        )
        logger.info("Ticket title: %s", snapshot.ticket.title)

        if self.config.monitor.auto_submit:
            report = await self._submit(snapshot, speed)
        elif self.config.callback.url:
            report = await self._request_approval(snapshot, speed)
        else:
            await self._notify(
                f"⚠️ Bandwidth throttling alert\n{self._speed_line(speed)}\n"
                "No callback URL configured, please submit a ticket manually."
            )
            report = IncidentReport(IncidentOutcome.MANUAL_ACTION_REQUIRED, speed_mbps=speed)
        return self._finish(report)

    async def _submit(self, snapshot: BandwatchConfig, speed: float) -> IncidentReport:
        logger.info("auto_submit is on, submitting ticket directly")
        try:
            ticket_id = await self.ticket_client_factory(snapshot).submit_ticket()
        except BandwatchError as e:
            logger.error("Ticket submission failed: %s", e)
            self._record_submission(False)
            await self._notify(
                f"⚠️ Bandwidth throttling alert\n{self._speed_line(speed)}\n"
                f"❌ Automatic ticket submission failed: {e}"
            )
            return IncidentReport(IncidentOutcome.SUBMIT_FAILED, speed_mbps=speed, error=str(e))

        self._record_submission(True)
        await self._notify(
            f"⚠️ Bandwidth throttling alert\n{self._speed_line(speed)}\n"
            f"✅ Ticket submitted automatically: {ticket_id}"
        )
        return IncidentReport(IncidentOutcome.SUBMITTED, speed_mbps=speed, ticket_id=ticket_id)

    async def _request_approval(self, snapshot: BandwatchConfig, speed: float) -> IncidentReport:
        token = self.store.register(snapshot)
        secret = SecretPolicy.from_secret(self.config.callback.secret).secret
        approve_url = build_approve_url(self.config.callback.url, token, secret)
        logger.info("Ticket awaiting approval")
        try:
            await self.notifier.send_approval_request(
                speed, self.config.monitor.speed_threshold, approve_url
            )
        except Exception as e:
            logger.warning("Approval request notification failed: %s", e)
        return IncidentReport(
            IncidentOutcome.AWAITING_APPROVAL, speed_mbps=speed, approve_url=approve_url
        )

    def _speed_line(self, speed: float) -> str:
        return (
            f"Download speed: {speed:.2f} Mbps "
            f"(threshold: {self.config.monitor.speed_threshold:g} Mbps)"
        )

    async def _notify(self, text: str) -> None:
        try:
            await self.notifier.send_text(text)
        except Exception as e:
            logger.warning("Notification failed: %s", e)

    def _record_submission(self, success: bool) -> None:
        if self.telemetry:
            self.telemetry.record_ticket_submission(success, trigger="auto")

    def _finish(self, report: IncidentReport) -> IncidentReport:
        self.last_report = report
        self.last_checked_at = datetime.now(UTC)
        if self.telemetry:
            self.telemetry.record_incident_outcome(report.outcome.value)
        return report
