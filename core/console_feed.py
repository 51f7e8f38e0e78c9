"""
Console consumer for the pipeline output feeds.

Drains the four output queues concurrently and writes each item to a text
stream (stdout by default) in arrival order per feed.
"""

from __future__ import annotations

import asyncio
import sys
from typing import TextIO

from core.pipeline import PipelineOutputs
from shared.types import ListenerState, PipelineStatus, ThroughputSample


def format_throughput(sample: ThroughputSample) -> str:
    return f"TPS: {sample.count}\n"


def format_status(status: PipelineStatus) -> str:
    if status.is_stopped:
        return f"[PIPELINE STOPPED] {status.reason or 'unknown reason'}\n"
    if status.state is ListenerState.SUBSCRIBED and status.reason:
        return f"[{status.state.value.upper()}] {status.reason}\n"
    return f"[{status.state.value.upper()}]\n"


class ConsoleFeed:
    """Prints transactions, decoded details, throughput and status lines."""

    def __init__(self, outputs: PipelineOutputs, stream: TextIO | None = None) -> None:
        self._outputs = outputs
        self._stream = stream or sys.stdout

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Print every feed until ``shutdown_event`` is set or a write fails."""
        consumers = [
            asyncio.create_task(self._consume(self._outputs.transactions, str), name="feed_transactions"),
            asyncio.create_task(self._consume(self._outputs.details, str), name="feed_details"),
            asyncio.create_task(
                self._consume(self._outputs.throughput, format_throughput), name="feed_throughput"
            ),
            asyncio.create_task(self._consume(self._outputs.status, format_status), name="feed_status"),
        ]
        stop_wait = asyncio.create_task(shutdown_event.wait(), name="feed_stop")
        failed: BaseException | None = None
        try:
            done, _ = await asyncio.wait(
                [*consumers, stop_wait], return_when=asyncio.FIRST_COMPLETED
            )
            for task in consumers:
                if task in done and task.exception() is not None:
                    failed = task.exception()
                    break
        finally:
            for task in (*consumers, stop_wait):
                task.cancel()
            await asyncio.gather(*consumers, stop_wait, return_exceptions=True)

        # A consumer only returns by raising; the stream is unusable after that
        if failed is not None:
            raise failed
        self.flush_pending()

    def flush_pending(self) -> None:
        """Write whatever is still queued without waiting."""
        for queue, render in (
            (self._outputs.transactions, str),
            (self._outputs.details, str),
            (self._outputs.status, format_status),
        ):
            while not queue.empty():
                self._write(render(queue.get_nowait()))

    async def _consume(self, queue: asyncio.Queue, render) -> None:
        while True:
            item = await queue.get()
            self._write(render(item))

    def _write(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()
