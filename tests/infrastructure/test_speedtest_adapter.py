"""Tests for the download-based bandwidth probe.

A fake clock advances one second per reading so measurements are exact.
"""

import httpx
import pytest

from bandwatch.domain.errors import ProbeError
from bandwatch.domain.ports.bandwidth_probe_port import BandwidthProbePort
from bandwatch.infrastructure.adapters.speedtest_adapter import SpeedtestAdapter

URLS = ("https://speed.example.com/a", "https://speed.example.com/b")


class _StepClock:
    def __init__(self, step=1.0):
        self.now = 0.0
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


class _Stream(httpx.AsyncByteStream):
    def __init__(self, chunks):
        self._chunks = chunks

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk


def _streaming(chunk_size=125_000, chunks=1000):
    def handler(request):
        return httpx.Response(200, stream=_Stream([b"x" * chunk_size] * chunks))

    return handler


class TestMeasure:
    @pytest.mark.asyncio
    async def test_computes_mbps(self):
        # The clock ticks once per reading: ten 125_000 byte chunks over 12 ticks
        probe = SpeedtestAdapter(
            URLS,
            duration_seconds=10,
            transport=httpx.MockTransport(_streaming()),
            clock=_StepClock(),
        )
        speed = await probe.measure()
        assert speed == pytest.approx(10 / 12)

    @pytest.mark.asyncio
    async def test_cache_busting_parameter(self):
        seen = []

        def handler(request):
            seen.append(request.url)
            return httpx.Response(200, stream=_Stream([b"x" * 1000] * 50))

        probe = SpeedtestAdapter(
            URLS, duration_seconds=5, transport=httpx.MockTransport(handler), clock=_StepClock()
        )
        await probe.measure()
        assert "t" in seen[0].params

    @pytest.mark.asyncio
    async def test_rotates_when_download_ends_early(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, stream=_Stream([b"x" * 1000] * 2))

        probe = SpeedtestAdapter(
            URLS, duration_seconds=10, transport=httpx.MockTransport(handler), clock=_StepClock()
        )
        await probe.measure()
        assert seen[:2] == ["/a", "/b"]

    @pytest.mark.asyncio
    async def test_first_url_failure_falls_back(self):
        def handler(request):
            if request.url.path == "/a":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, stream=_Stream([b"x" * 125_000] * 1000))

        probe = SpeedtestAdapter(
            URLS, duration_seconds=5, transport=httpx.MockTransport(handler), clock=_StepClock()
        )
        assert await probe.measure() > 0

    @pytest.mark.asyncio
    async def test_all_urls_failing_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        probe = SpeedtestAdapter(
            URLS, duration_seconds=5, transport=httpx.MockTransport(handler), clock=_StepClock()
        )
        with pytest.raises(ProbeError):
            await probe.measure()

    @pytest.mark.asyncio
    async def test_http_error_status_counts_as_failure(self):
        def handler(request):
            return httpx.Response(503)

        probe = SpeedtestAdapter(
            URLS, duration_seconds=5, transport=httpx.MockTransport(handler), clock=_StepClock()
        )
        with pytest.raises(ProbeError):
            await probe.measure()

    @pytest.mark.asyncio
    async def test_no_data_times_out(self):
        def handler(request):
            return httpx.Response(200, stream=_Stream([]))

        probe = SpeedtestAdapter(
            URLS,
            duration_seconds=5,
            connect_timeout_seconds=3,
            transport=httpx.MockTransport(handler),
            clock=_StepClock(),
        )
        with pytest.raises(ProbeError, match="no data"):
            await probe.measure()

    def test_requires_urls(self):
        with pytest.raises(ValueError):
            SpeedtestAdapter(())

    def test_implements_port(self):
        assert isinstance(SpeedtestAdapter(URLS), BandwidthProbePort)
