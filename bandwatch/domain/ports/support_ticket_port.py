"""
Support Ticket Port

Architectural Intent:
- Port interface for filing a support ticket with the cloud provider
- The incident workflow only needs "submit a ticket, get its id back"

Design Decisions:
- Uses Protocol for structural typing (no inheritance needed)
- Ticket ids are strings to stay provider-agnostic
- Failures are raised as bandwatch.domain.errors types
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class SupportTicketPort(Protocol):
    """Port for the provider's ticket-filing pipeline."""

    async def submit_ticket(self) -> str:
        """Resolve product/category as needed and create the ticket. Returns ticket ID."""
        ...
