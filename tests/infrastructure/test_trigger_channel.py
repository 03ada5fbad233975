"""Tests for single-flight manual trigger admission."""

import asyncio

import pytest

from bandwatch.infrastructure.trigger_channel import ManualTriggerChannel


class _BlockingCheck:
    """Check handler that runs until released."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        self.started.set()
        await self.release.wait()


class TestOffer:
    @pytest.mark.asyncio
    async def test_second_offer_rejected_while_queued(self):
        channel = ManualTriggerChannel()
        assert channel.offer() is True
        assert channel.offer() is False
        assert channel.busy is True

    @pytest.mark.asyncio
    async def test_busy_while_processing_then_free(self):
        channel = ManualTriggerChannel()
        check = _BlockingCheck()
        channel.start(check)

        assert channel.offer() is True
        await asyncio.wait_for(check.started.wait(), 1)

        # The queue slot is empty again, but the check is still running
        assert channel.busy is True
        assert channel.offer() is False

        check.release.set()
        for _ in range(100):
            if not channel.busy:
                break
            await asyncio.sleep(0.01)
        assert channel.busy is False
        assert channel.offer() is True
        await channel.close()
        assert check.calls >= 1

    @pytest.mark.asyncio
    async def test_closed_channel_rejects(self):
        channel = ManualTriggerChannel()
        await channel.close()
        assert channel.offer() is False

    @pytest.mark.asyncio
    async def test_offer_threadsafe_from_worker_thread(self):
        channel = ManualTriggerChannel()
        loop = asyncio.get_running_loop()
        first = await asyncio.to_thread(channel.offer_threadsafe, loop)
        second = await asyncio.to_thread(channel.offer_threadsafe, loop)
        assert (first, second) == (True, False)


class TestConsumer:
    @pytest.mark.asyncio
    async def test_failed_check_frees_the_slot(self):
        channel = ManualTriggerChannel()
        done = asyncio.Event()

        async def failing():
            done.set()
            raise RuntimeError("boom")

        channel.start(failing)
        assert channel.offer() is True
        await asyncio.wait_for(done.wait(), 1)
        for _ in range(100):
            if not channel.busy:
                break
            await asyncio.sleep(0.01)
        assert channel.busy is False
        await channel.close()

    @pytest.mark.asyncio
    async def test_close_waits_for_running_check(self):
        channel = ManualTriggerChannel()
        check = _BlockingCheck()
        channel.start(check)
        channel.offer()
        await asyncio.wait_for(check.started.wait(), 1)

        closer = asyncio.create_task(channel.close())
        await asyncio.sleep(0.05)
        assert not closer.done()

        check.release.set()
        await asyncio.wait_for(closer, 1)
        assert channel.busy is False
