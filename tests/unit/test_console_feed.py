"""
Unit tests for core/console_feed.py.

Tests cover status/throughput line formats, that queued items reach the
output stream (including items still queued at stop) and that a failing
write ends the feed instead of leaving producers blocked.
"""

from __future__ import annotations

import asyncio
import io

import pytest

from core.console_feed import ConsoleFeed, format_status, format_throughput
from core.pipeline import PipelineOutputs
from shared.types import ListenerState, PipelineStatus, ThroughputSample


class TestFormatting:
    def test_throughput_line(self):
        assert format_throughput(ThroughputSample(count=42, window_seconds=1.0, timestamp=0.0)) == "TPS: 42\n"

    def test_stopped_banner(self):
        status = PipelineStatus(ListenerState.CLOSED, "stream read failed: reset", 0.0)
        assert format_status(status) == "[PIPELINE STOPPED] stream read failed: reset\n"

    def test_disconnected_without_reason(self):
        status = PipelineStatus(ListenerState.DISCONNECTED, None, 0.0)
        assert format_status(status) == "[PIPELINE STOPPED] unknown reason\n"

    def test_running_states(self):
        assert format_status(PipelineStatus(ListenerState.STREAMING, None, 0.0)) == "[STREAMING]\n"
        subscribed = PipelineStatus(ListenerState.SUBSCRIBED, "subscription 0x1", 0.0)
        assert format_status(subscribed) == "[SUBSCRIBED] subscription 0x1\n"


class TestConsoleFeed:
    async def test_prints_all_feeds(self):
        outputs = PipelineOutputs()
        out = io.StringIO()
        feed = ConsoleFeed(outputs, stream=out)
        stop = asyncio.Event()
        task = asyncio.create_task(feed.run(stop))

        await outputs.transactions.put("Transaction to contract (WETH) at now:\n")
        await outputs.details.put("TxHash: 0xabc\n")
        await outputs.throughput.put(ThroughputSample(3, 1.0, 0.0))
        await outputs.status.put(PipelineStatus(ListenerState.CLOSED, "stream ended", 0.0))
        await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        text = out.getvalue()
        assert "Transaction to contract (WETH)" in text
        assert "TxHash: 0xabc\n" in text
        assert "TPS: 3\n" in text
        assert "[PIPELINE STOPPED] stream ended\n" in text

    async def test_flushes_queued_items_on_stop(self):
        outputs = PipelineOutputs()
        out = io.StringIO()
        feed = ConsoleFeed(outputs, stream=out)
        outputs.details.put_nowait("Method Name: deposit\n")

        stop = asyncio.Event()
        stop.set()
        await feed.run(stop)

        assert "Method Name: deposit\n" in out.getvalue()

    async def test_write_failure_ends_run(self):
        class _ClosedPipe(io.StringIO):
            def write(self, text):
                raise BrokenPipeError(32, "Broken pipe")

        outputs = PipelineOutputs(transactions=asyncio.Queue(1))
        feed = ConsoleFeed(outputs, stream=_ClosedPipe())
        stop = asyncio.Event()
        task = asyncio.create_task(feed.run(stop))

        await outputs.transactions.put("Transaction to contract (WETH) at now:\n")

        with pytest.raises(BrokenPipeError):
            await asyncio.wait_for(task, timeout=1)
        assert not stop.is_set()
