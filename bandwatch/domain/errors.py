"""
Error Taxonomy

Architectural Intent:
- One exception hierarchy for every failure the ticketing core can surface
- Adapters translate library errors (httpx, hmac) into these types at the edge
- Use cases and the callback surface report them, they never crash the process

Design Decisions:
- No retry hints are carried: every failure is terminal for its invocation
- UpstreamApiError keeps the provider message verbatim for operators
- NotFoundError keeps the scanned candidates for diagnosis
"""

from __future__ import annotations
from typing import Optional


class BandwatchError(Exception):
    """Base class for all bandwatch errors."""


class SigningError(BandwatchError):
    """Secret key material could not be used to sign a request."""


class TransportError(BandwatchError):
    """Network or HTTP-level failure talking to a remote service."""


class UpstreamApiError(BandwatchError):
    """The provider answered, but not with a successful envelope."""

    def __init__(
        self,
        message: str,
        action: str = "",
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.action = action
        self.status_code = status_code
        self.request_id = request_id

    def __str__(self) -> str:
        prefix = f"{self.action} failed" if self.action else "API call failed"
        if self.status_code is not None:
            prefix = f"{prefix} (HTTP {self.status_code})"
        return f"{prefix}: {self.message}"


class NotFoundError(BandwatchError):
    """Catalog resolution found nothing usable."""

    def __init__(self, message: str, candidates: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.candidates = candidates

    def __str__(self) -> str:
        if not self.candidates:
            return self.message
        listing = "\n".join(f"  {c}" for c in self.candidates)
        return f"{self.message}\nScanned:\n{listing}"


class ProbeError(BandwatchError):
    """Bandwidth measurement failed."""


class InvalidTokenError(BandwatchError):
    """Approval token is not known to the store."""


class DuplicateApprovalError(BandwatchError):
    """Approval token was already used."""
