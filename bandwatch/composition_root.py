"""
Composition Root

Architectural Intent:
- Dependency injection composition root for the bandwatch application
- Single place where all adapters and use cases are wired together
- No adapter instantiation should occur outside this module (except CLI)

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Factory function creates and wires all dependencies
- Notification channels are added only when configured
- Telemetry is optional and created by the caller (its setup is async)
"""

from dataclasses import dataclass
from typing import Optional

from bandwatch.infrastructure.config import BandwatchConfig
from bandwatch.infrastructure.adapters.feishu_adapter import FeishuAdapter
from bandwatch.infrastructure.adapters.telegram_adapter import TelegramAdapter
from bandwatch.infrastructure.adapters.notification_dispatcher import NotificationDispatcher
from bandwatch.infrastructure.adapters.speedtest_adapter import SpeedtestAdapter
from bandwatch.infrastructure.adapters.workorder_client import WorkorderClient
from bandwatch.infrastructure.approval_store import ApprovalStore
from bandwatch.infrastructure.trigger_channel import ManualTriggerChannel
from bandwatch.infrastructure.telemetry.otel_exporter import OTELExporter
from bandwatch.domain.value_objects.secret_policy import SecretPolicy
from bandwatch.application.use_cases.check_incident import CheckIncident
from bandwatch.application.use_cases.approve_pending_ticket import ApprovePendingTicket


@dataclass
class BandwatchContainer:
    """DI container holding all wired dependencies."""

    config: BandwatchConfig
    notifier: NotificationDispatcher
    probe: SpeedtestAdapter
    store: ApprovalStore
    trigger: ManualTriggerChannel
    policy: SecretPolicy
    check_incident: CheckIncident
    approve_ticket: ApprovePendingTicket
    telemetry: Optional[OTELExporter] = None


def build_notifier(config: BandwatchConfig) -> NotificationDispatcher:
    """Dispatcher over every configured notification channel."""
    dispatcher = NotificationDispatcher()
    notifications = config.notifications
    if notifications.feishu_webhook_url:
        dispatcher.add_channel(FeishuAdapter(notifications.feishu_webhook_url))
    if notifications.telegram_enabled:
        dispatcher.add_channel(
            TelegramAdapter(
                notifications.telegram_bot_token,
                notifications.telegram_chat_id,
                interactive=notifications.telegram_commands_enabled,
            )
        )
    return dispatcher


def create_container(
    config: BandwatchConfig,
    telemetry: Optional[OTELExporter] = None,
) -> BandwatchContainer:
    """Create and wire all dependencies."""
    notifier = build_notifier(config)
    probe = SpeedtestAdapter()
    store = ApprovalStore()
    trigger = ManualTriggerChannel()
    policy = SecretPolicy.from_secret(config.callback.secret)

    check_incident = CheckIncident(
        config,
        probe,
        store,
        notifier,
        ticket_client_factory=WorkorderClient,
        telemetry=telemetry,
    )
    approve_ticket = ApprovePendingTicket(
        store,
        notifier,
        ticket_client_factory=WorkorderClient,
        telemetry=telemetry,
    )

    return BandwatchContainer(
        config=config,
        notifier=notifier,
        probe=probe,
        store=store,
        trigger=trigger,
        policy=policy,
        check_incident=check_incident,
        approve_ticket=approve_ticket,
        telemetry=telemetry,
    )
