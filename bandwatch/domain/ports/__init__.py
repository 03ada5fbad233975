"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the domain needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from bandwatch.domain.ports.notification_port import NotificationPort
from bandwatch.domain.ports.support_ticket_port import SupportTicketPort
from bandwatch.domain.ports.bandwidth_probe_port import BandwidthProbePort

__all__ = [
    "NotificationPort",
    "SupportTicketPort",
    "BandwidthProbePort",
]
