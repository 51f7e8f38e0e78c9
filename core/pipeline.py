"""
Transaction ingestion-and-decoding pipeline.

Owns the pending-transaction subscription, the throughput counter and the
output queues. Every notification is handled by its own asyncio task:

    fetch full record -> selector filter -> registry match -> decode

Listener states: DISCONNECTED -> CONNECTING -> SUBSCRIBED -> STREAMING -> CLOSED.
A failed dial/subscribe goes back to DISCONNECTED and is fatal; a stream read
error closes the listener for the run (no reconnect).

Usage:
    context = PipelineContext(stream, rpc_client, registry, decoder, outputs)
    pipeline = TransactionPipeline(context)
    await pipeline.run(shutdown_event)
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from chain.rpc_client import RpcClient, RpcError
from chain.subscription import PendingTransactionStream, SubscriptionError
from config.loader import get_config, get_env_var
from core.abi_decoder import AbiDecoder, MethodNotFoundError, UnpackError
from core.contract_registry import ContractRegistry
from core.selector_filter import SelectorFilter, selector_of
from monitor_logging.logger_manager import log_data_entry, log_data_output, setup_module_logger
from shared.constants import (
    DEFAULT_DRAIN_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENT_TASKS,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_THROUGHPUT_INTERVAL_SECONDS,
)
from shared.types import (
    ContractDescriptor,
    ListenerState,
    PipelineStatus,
    ThroughputSample,
    TransactionRecord,
)

_T = TypeVar("_T")


class PipelineFatalError(Exception):
    """Raised by run() when the subscription cannot be established."""


# ---------------------------------------------------------------------------
# Context and outputs
# ---------------------------------------------------------------------------


@dataclass
class PipelineOutputs:
    """Outbound feeds consumed by the dashboard / console feed."""

    transactions: asyncio.Queue[str] = field(default_factory=asyncio.Queue)
    details: asyncio.Queue[str] = field(default_factory=asyncio.Queue)
    throughput: asyncio.Queue[ThroughputSample] = field(default_factory=asyncio.Queue)
    status: asyncio.Queue[PipelineStatus] = field(default_factory=asyncio.Queue)

    @classmethod
    def from_config(cls) -> PipelineOutputs:
        out_cfg = get_config().get_app_config().get("outputs", {})
        return cls(
            transactions=asyncio.Queue(out_cfg.get("transactions_queue_size", DEFAULT_QUEUE_SIZE)),
            details=asyncio.Queue(out_cfg.get("details_queue_size", DEFAULT_QUEUE_SIZE)),
            throughput=asyncio.Queue(out_cfg.get("throughput_queue_size", 16)),
            status=asyncio.Queue(out_cfg.get("status_queue_size", 16)),
        )


@dataclass
class PipelineContext:
    """Everything the pipeline needs, constructed once at startup."""

    stream: PendingTransactionStream
    rpc_client: RpcClient
    registry: ContractRegistry
    decoder: AbiDecoder
    outputs: PipelineOutputs
    selector_filter: SelectorFilter = field(default_factory=SelectorFilter)
    throughput_interval: float = DEFAULT_THROUGHPUT_INTERVAL_SECONDS
    max_concurrent_tasks: int = DEFAULT_MAX_CONCURRENT_TASKS
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT_SECONDS
    deep_dive: bool = False

    @staticmethod
    def tuning_from_config() -> dict[str, Any]:
        """Timing/limit keyword arguments from timing.json and app.json with env overrides."""
        cfg = get_config()
        pipeline_cfg = cfg.get_timing_config().get("pipeline", {})
        app_cfg = cfg.get_app_config()
        return {
            "throughput_interval": get_env_var(
                "THROUGHPUT_INTERVAL_SECONDS",
                pipeline_cfg.get("throughput_interval_seconds", DEFAULT_THROUGHPUT_INTERVAL_SECONDS),
                float,
            ),
            "max_concurrent_tasks": get_env_var(
                "MAX_CONCURRENT_TASKS",
                pipeline_cfg.get("max_concurrent_tasks", DEFAULT_MAX_CONCURRENT_TASKS),
                int,
            ),
            "drain_timeout": pipeline_cfg.get("drain_timeout_seconds", DEFAULT_DRAIN_TIMEOUT_SECONDS),
            "deep_dive": app_cfg.get("deep_dive", {}).get("enabled", False),
        }


class ThroughputCounter:
    """
    Count of fetched transactions in the current window.

    Only touched from the event loop thread, so increment and swap never
    interleave; increments that complete after a swap land in the next window.
    """

    def __init__(self) -> None:
        self._count = 0

    def increment(self) -> None:
        self._count += 1

    def swap(self) -> int:
        """Return the current count and reset it to zero."""
        count, self._count = self._count, 0
        return count

    @property
    def value(self) -> int:
        return self._count


def format_transaction_summary(
    record: TransactionRecord,
    contract: ContractDescriptor,
    seen_at: datetime | None = None,
) -> str:
    seen_at = seen_at or datetime.now(timezone.utc)
    return (
        f"Transaction to contract ({contract.name}) at {seen_at.isoformat()}:\n"
        f"Hash: {record.hash}\n"
        f"From: {record.from_address}\n"
        f"To: {record.to_address}\n"
        f"Value: {record.value}\n"
        f"Gas: {record.gas}\n"
        f"Gas Price: {record.gas_price}\n"
        f"Nonce: {record.nonce}\n"
        f"Block Hash: {record.block_hash}\n"
        f"Block Number: {record.block_number}\n"
        f"Transaction Index: {record.transaction_index}\n"
        f"Input Data: {record.input_data}\n"
        f"V: {record.v}, R: {record.r}, S: {record.s}\n"
    )


def _log_context(
    record: TransactionRecord, contract: ContractDescriptor, error: Exception
) -> dict[str, str]:
    """Structured fields picked up by the JSON log formatter."""
    return {
        "tx_hash": record.hash,
        "contract": contract.name,
        "selector": selector_of(record.input_data) or "",
        "error": str(error),
    }


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class TransactionPipeline:
    """Subscription listener plus concurrent per-transaction decode tasks."""

    def __init__(self, context: PipelineContext) -> None:
        self._ctx = context
        self._outputs = context.outputs
        self._counter = ThroughputCounter()
        self._in_flight: set[asyncio.Task[None]] = set()
        self._semaphore = (
            asyncio.Semaphore(context.max_concurrent_tasks)
            if context.max_concurrent_tasks > 0
            else None
        )
        self._state = ListenerState.DISCONNECTED
        self._stopping = False
        self._failure: str | None = None

        self._logger = setup_module_logger(
            "pipeline", "pipeline.log", module_folder="Pipeline_Logs"
        )

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def counter(self) -> ThroughputCounter:
        return self._counter

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def failure(self) -> str | None:
        """Reason the listener ended on its own (None after a requested shutdown)."""
        return self._failure

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Stream until ``shutdown_event`` is set or the stream fails."""
        self._stopping = False
        self._failure = None
        self._set_state(ListenerState.CONNECTING)
        try:
            subscription_id = await self._ctx.stream.open()
        except SubscriptionError as exc:
            self._logger.critical("Subscription failed: %s", exc)
            self._failure = str(exc)
            self._set_state(ListenerState.DISCONNECTED, str(exc))
            raise PipelineFatalError(str(exc)) from exc
        self._set_state(ListenerState.SUBSCRIBED, f"subscription {subscription_id}")

        throughput_task = asyncio.create_task(
            self._throughput_loop(shutdown_event), name="throughput_ticker"
        )
        reader_task = asyncio.create_task(self._read_loop(), name="subscription_reader")
        stop_task = asyncio.create_task(shutdown_event.wait(), name="shutdown_wait")
        self._set_state(ListenerState.STREAMING)

        try:
            await asyncio.wait({reader_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self._stopping = True
            for task in (reader_task, stop_task, throughput_task):
                if not task.done():
                    task.cancel()
            reader_result, _, _ = await asyncio.gather(
                reader_task, stop_task, throughput_task, return_exceptions=True
            )
            await self._ctx.stream.close()
            await self._drain()

            if isinstance(reader_result, asyncio.CancelledError):
                reason = "shutdown requested"
            elif isinstance(reader_result, BaseException):
                reason = f"stream read failed: {reader_result}"
                self._failure = reason
                self._logger.error("Listener terminated: %s", reader_result)
            else:
                reason = "stream ended"
                self._failure = reason
                self._logger.error("Listener terminated: subscription stream ended")
            self._set_state(ListenerState.CLOSED, reason)

    async def _read_loop(self) -> None:
        async for tx_hash in self._ctx.stream.hashes():
            if self._stopping:
                break
            await self._dispatch(tx_hash)

    async def _throughput_loop(self, shutdown_event: asyncio.Event) -> None:
        interval = self._ctx.throughput_interval
        while not shutdown_event.is_set():
            await asyncio.sleep(interval)
            sample = ThroughputSample(
                count=self._counter.swap(),
                window_seconds=interval,
                timestamp=time.time(),
            )
            self._offer(self._outputs.throughput, sample)

    # ------------------------------------------------------------------
    # Dispatch and task tracking
    # ------------------------------------------------------------------

    async def _dispatch(self, tx_hash: str) -> None:
        if self._semaphore is not None:
            await self._semaphore.acquire()
        task = asyncio.create_task(self._run_task(tx_hash), name=f"tx:{tx_hash[:18]}")
        self._in_flight.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._in_flight.discard(task)
        if self._semaphore is not None:
            self._semaphore.release()

    async def _run_task(self, tx_hash: str) -> None:
        try:
            await self.process_transaction(tx_hash)
        except asyncio.CancelledError:
            raise
        except Exception:
            self._logger.exception("Unhandled error processing %s", tx_hash)

    async def _drain(self) -> None:
        pending = set(self._in_flight)
        if not pending:
            return
        self._logger.info("Waiting for %d in-flight transactions", len(pending))
        _, still_running = await asyncio.wait(pending, timeout=self._ctx.drain_timeout)
        if still_running:
            self._logger.warning(
                "%d transactions still in flight after %.1fs; leaving them to finish",
                len(still_running),
                self._ctx.drain_timeout,
            )

    # ------------------------------------------------------------------
    # Per-transaction pipeline
    # ------------------------------------------------------------------

    async def process_transaction(self, tx_hash: str) -> None:
        """Fetch, filter, match and decode one pending transaction."""
        try:
            record = await self._ctx.rpc_client.get_transaction_by_hash(tx_hash)
        except RpcError as exc:
            self._logger.warning("Fetch failed for %s: %s", tx_hash, exc)
            return
        # Unknown hashes still count toward throughput
        self._counter.increment()
        if record is None:
            return

        if not self._ctx.selector_filter.is_relevant(record.input_data):
            return
        contract = self._ctx.registry.match(record.to_address)
        if contract is None:
            self._logger.debug(
                "%s to unmonitored %s",
                self._ctx.selector_filter.method_name(record.input_data),
                record.to_address,
                extra={"tx_hash": record.hash},
            )
            return

        if self._ctx.deep_dive:
            log_data_entry(
                trace_id=record.hash,
                source_module="pipeline",
                what="matched pending transaction",
                why=f"recipient is monitored contract {contract.name}",
                data_type="TransactionRecord",
                data=dataclasses.asdict(record),
            )

        await self._publish(
            self._outputs.transactions, format_transaction_summary(record, contract)
        )
        await self._decode(record, contract)

    async def _decode(self, record: TransactionRecord, contract: ContractDescriptor) -> None:
        decoder = self._ctx.decoder
        try:
            method = decoder.resolve_method(record.input_data, contract.interface)
        except MethodNotFoundError as exc:
            self._logger.info(
                "%s on %s: %s", record.hash, contract.name, exc, extra=_log_context(record, contract, exc)
            )
            return
        except UnpackError as exc:
            self._logger.warning(
                "%s on %s: %s", record.hash, contract.name, exc, extra=_log_context(record, contract, exc)
            )
            return

        await self._publish(self._outputs.details, f"TxHash: {record.hash}\n")
        await self._publish(self._outputs.details, f"Method Name: {method.name}\n")

        try:
            values = decoder.unpack(method, record.input_data)
        except UnpackError as exc:
            self._logger.warning(
                "%s on %s: %s",
                record.hash,
                contract.name,
                exc,
                extra=_log_context(record, contract, exc),
            )
            return

        rendered = []
        async for param in decoder.render_params(method, values):
            rendered.append(param.rendered)
            await self._publish(self._outputs.details, param.rendered)

        if self._ctx.deep_dive:
            log_data_output(
                trace_id=record.hash,
                source_module="pipeline",
                what=f"decoded {method.signature}",
                why="call data matched monitored interface",
                data_type="DecodedMethodCall",
                data={"method": method.name, "params": rendered},
                next_stage="details_output",
            )

    # ------------------------------------------------------------------
    # Output helpers
    # ------------------------------------------------------------------

    async def _publish(self, queue: asyncio.Queue[_T], item: _T) -> None:
        """Blocking put while running; drop-on-full once shutdown has begun."""
        if not self._stopping:
            await queue.put(item)
            return
        try:
            queue.put_nowait(item)
        except asyncio.QueueFull:
            self._logger.debug("Output queue full during shutdown; dropping item")

    def _offer(self, queue: asyncio.Queue[_T], item: _T) -> None:
        """Non-blocking put that replaces the oldest entry when the queue is full."""
        try:
            queue.put_nowait(item)
        except asyncio.QueueFull:
            queue.get_nowait()
            queue.put_nowait(item)

    def _set_state(self, state: ListenerState, reason: str | None = None) -> None:
        previous, self._state = self._state, state
        self._logger.info(
            "Listener %s -> %s%s", previous.value, state.value, f" ({reason})" if reason else ""
        )
        self._offer(self._outputs.status, PipelineStatus(state, reason, time.time()))
