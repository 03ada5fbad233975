"""
Notification Port

Architectural Intent:
- Abstract interface for telling operators what the bandwidth check decided
- Decouples the incident workflow from concrete chat channels (Feishu, Telegram)
- The workflow never depends on a notification succeeding

Design Decisions:
- Uses Protocol for structural typing (no inheritance needed)
- send_text: plain status messages (normal, failed, submitted)
- send_approval_request: throttling alert carrying the approval link
- Methods return bool to indicate success/failure
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class NotificationPort(Protocol):
    """Port for sending bandwidth alerts through external chat channels."""

    async def send_text(self, text: str) -> bool:
        """Send a plain text message.

        Returns:
            True if the channel accepted the message, False otherwise
        """
        ...

    async def send_approval_request(
        self, speed_mbps: float, threshold_mbps: float, approve_url: str
    ) -> bool:
        """Send a throttling alert with a button/link that approves the ticket.

        Args:
            speed_mbps: Measured download speed
            threshold_mbps: Configured alert threshold
            approve_url: Link that submits the pending ticket when opened

        Returns:
            True if the channel accepted the message, False otherwise
        """
        ...
