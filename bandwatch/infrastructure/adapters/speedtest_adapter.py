"""
Speedtest Adapter

Architectural Intent:
- Implements BandwidthProbePort with a single-stream HTTP download
- Throughput is measured from the first received byte for a fixed window

Design Decisions:
- Large Cloudflare test files, rotated if a download ends early
- Cache-busting query parameter per request
- Times out if no byte arrives within connect_timeout_seconds
- Each URL gets one attempt in the first round before a connection error
  is considered fatal
"""

from __future__ import annotations
from typing import Callable, Optional, Sequence
import logging
import time

import httpx

from bandwatch.domain.errors import ProbeError

logger = logging.getLogger(__name__)

DOWNLOAD_URLS: tuple[str, ...] = (
    "https://speed.cloudflare.com/__down?bytes=104857600",
    "https://speed.cloudflare.com/__down?bytes=26214400",
)


class SpeedtestAdapter:
    """Download-based bandwidth probe."""

    def __init__(
        self,
        urls: Sequence[str] = DOWNLOAD_URLS,
        duration_seconds: float = 10.0,
        connect_timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not urls:
            raise ValueError("SpeedtestAdapter needs at least one download URL")
        self._urls = tuple(urls)
        self._duration = duration_seconds
        self._connect_timeout = connect_timeout_seconds
        self._transport = transport
        self._clock = clock

    def _cache_busted(self, url: str) -> str:
        sep = "&" if "?" in url else "?"
        return f"{url}{sep}t={int(time.time() * 1000)}"

    async def measure(self) -> float:
        """Download for the configured window and return Mbps.

        Raises:
            ProbeError: nothing was received, or every download URL failed
        """
        logger.info("Measuring download speed (single stream, %.0fs)...", self._duration)

        total_bytes = 0
        measure_start: Optional[float] = None
        overall_start = self._clock()
        attempts = 0

        async with httpx.AsyncClient(
            transport=self._transport,
            headers={"User-Agent": "Mozilla/5.0"},
            timeout=httpx.Timeout(self._connect_timeout, connect=10.0),
            follow_redirects=True,
        ) as client:
            while True:
                now = self._clock()
                if measure_start is None and now - overall_start > self._connect_timeout:
                    raise ProbeError(
                        f"no data received within {self._connect_timeout:.0f}s"
                    )
                if measure_start is not None and now - measure_start >= self._duration:
                    break

                url = self._cache_busted(self._urls[attempts % len(self._urls)])
                attempts += 1
                try:
                    async with client.stream("GET", url) as response:
                        response.raise_for_status()
                        async for chunk in response.aiter_bytes():
                            if measure_start is None:
                                measure_start = self._clock()
                                logger.debug("Data started flowing, timer started")
                            total_bytes += len(chunk)
                            if self._clock() - measure_start >= self._duration:
                                break
                except httpx.HTTPError as e:
                    if attempts <= len(self._urls):
                        logger.debug("Download from %s failed: %s", url, e)
                        continue
                    raise ProbeError(f"speed test connection failed: {e}") from e

        elapsed = self._clock() - measure_start if measure_start is not None else 0.0
        if total_bytes == 0 or elapsed <= 0:
            raise ProbeError("speed test received no data")

        speed_mbps = (total_bytes * 8) / (elapsed * 1_000_000)
        logger.info(
            "Speed test done: %.2f MB in %.1fs, %.2f Mbps",
            total_bytes / 1_000_000,
            elapsed,
            speed_mbps,
        )
        return speed_mbps
