"""
Bandwidth Probe Port

Architectural Intent:
- Interchangeable throughput measurement behind a single call
- Returns download speed in Mbps, or raises ProbeError
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class BandwidthProbePort(Protocol):
    """Port for measuring download throughput."""

    async def measure(self) -> float:
        """Measure download speed. Returns Mbps."""
        ...
