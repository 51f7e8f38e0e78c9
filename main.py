"""
Mempool Monitor: main entrypoint.

Single-process asyncio runner that orchestrates two concurrent tasks:
    1. TransactionPipeline: pending-tx subscription, fetch, filter, decode
    2. ConsoleFeed:         prints the pipeline's four output feeds

The pipeline and the feed communicate through in-memory asyncio.Queues.
Each pending transaction is handled by its own task inside the pipeline.

Usage:
    python main.py          # reads WS_ENDPOINT / HTTPS_ENDPOINT from .env
"""

from __future__ import annotations

import asyncio
import signal
import sys

from dotenv import load_dotenv

from chain.rpc_client import RpcClient
from chain.subscription import PendingTransactionStream
from config.loader import get_config, get_env_var, load_endpoints
from config.validate import ConfigValidationError, validate_all_configs
from core.abi_decoder import AbiDecoder
from core.console_feed import ConsoleFeed
from core.contract_registry import ContractRegistry
from core.pipeline import PipelineContext, PipelineFatalError, PipelineOutputs, TransactionPipeline
from core.token_resolver import TokenMetadataResolver
from monitor_logging.logger_manager import create_module_log_directories, setup_module_logger

# ---------------------------------------------------------------------------
# Module logger (logged to logs/ root, no sub-folder)
# ---------------------------------------------------------------------------
_logger = setup_module_logger("main", "main.log")


# ---------------------------------------------------------------------------
# Startup banner
# ---------------------------------------------------------------------------


def _redact(url: str) -> str:
    return f"{url[:25]}...{url[-6:]}" if len(url) > 31 else url


def _log_banner(
    ws_url: str,
    http_url: str,
    authenticated: bool,
    registry: ContractRegistry,
    enrich_tokens: bool,
    tuning: dict,
) -> None:
    """Log a concise startup summary."""
    _logger.info("=" * 60)
    _logger.info("Mempool Monitor starting")
    _logger.info("=" * 60)
    _logger.info("  ws endpoint     : %s", _redact(ws_url))
    _logger.info("  http endpoint   : %s", _redact(http_url))
    _logger.info("  basic auth      : %s", authenticated)
    for descriptor in registry.descriptors:
        _logger.info(
            "  contract        : %s @ %s (%d methods)",
            descriptor.name,
            descriptor.address,
            len(descriptor.interface),
        )
    _logger.info("  enrich tokens   : %s", enrich_tokens)
    _logger.info("  tps interval    : %ss", tuning["throughput_interval"])
    _logger.info("  max tasks       : %s", tuning["max_concurrent_tasks"] or "unbounded")
    _logger.info("=" * 60)


# ---------------------------------------------------------------------------
# Task done callback: detect unhandled exceptions
# ---------------------------------------------------------------------------


def _task_done_callback(
    task: asyncio.Task[None],
    shutdown_event: asyncio.Event,
) -> None:
    """Called when the pipeline or feed task finishes (normally or with error)."""
    try:
        exc = task.exception()
    except asyncio.CancelledError:
        _logger.info("Task %s cancelled", task.get_name())
        return

    if exc is not None:
        _logger.critical(
            "Task %s failed with unhandled exception: %s",
            task.get_name(),
            exc,
            exc_info=exc,
        )
    else:
        _logger.info("Task %s finished", task.get_name())
    shutdown_event.set()


# ---------------------------------------------------------------------------
# Main async entry
# ---------------------------------------------------------------------------


async def _run() -> int:
    """Wire all components and run until a signal arrives or the stream stops."""
    # ------------------------------------------------------------------
    # 1. Load environment and validate configuration
    # ------------------------------------------------------------------
    load_dotenv()
    create_module_log_directories()

    try:
        validate_all_configs()
    except ConfigValidationError as exc:
        _logger.critical("Config validation failed:\n%s", exc)
        print(exc, file=sys.stderr)
        return 1

    cfg = get_config()
    endpoints = load_endpoints()
    enrich_tokens: bool = get_env_var(
        "ENRICH_TOKENS", cfg.get_app_config().get("decoder", {}).get("enrich_tokens", True), bool
    )

    # ------------------------------------------------------------------
    # 2. Initialize shared instances (dependency order)
    # ------------------------------------------------------------------
    try:
        registry = ContractRegistry.from_config()
    except ConfigValidationError as exc:
        _logger.critical("Contract registry failed to load: %s", exc)
        print(exc, file=sys.stderr)
        return 1

    rpc_client = RpcClient(endpoints.http_url, endpoints.username, endpoints.password)
    token_resolver = TokenMetadataResolver(rpc_client)
    decoder = AbiDecoder(token_resolver, enrich_tokens=enrich_tokens)
    stream = PendingTransactionStream(endpoints.ws_url, endpoints.username, endpoints.password)
    outputs = PipelineOutputs.from_config()
    tuning = PipelineContext.tuning_from_config()

    context = PipelineContext(
        stream=stream,
        rpc_client=rpc_client,
        registry=registry,
        decoder=decoder,
        outputs=outputs,
        **tuning,
    )
    pipeline = TransactionPipeline(context)
    feed = ConsoleFeed(outputs)

    _log_banner(
        endpoints.ws_url,
        endpoints.http_url,
        endpoints.has_credentials,
        registry,
        decoder.enrich_tokens,
        tuning,
    )

    # ------------------------------------------------------------------
    # 3. Signal handling for graceful shutdown
    # ------------------------------------------------------------------
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        _logger.info("Received %s, initiating graceful shutdown", sig.name)
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    # ------------------------------------------------------------------
    # 4. Launch pipeline and console feed
    # ------------------------------------------------------------------
    feed_stop = asyncio.Event()
    task_pipeline = asyncio.create_task(pipeline.run(shutdown_event), name="pipeline")
    task_feed = asyncio.create_task(feed.run(feed_stop), name="console_feed")
    task_pipeline.add_done_callback(
        lambda done_task: _task_done_callback(done_task, shutdown_event)
    )
    task_feed.add_done_callback(
        lambda done_task: _task_done_callback(done_task, shutdown_event)
    )

    _logger.info("All tasks launched: pipeline, console_feed")

    # ------------------------------------------------------------------
    # 5. Wait for shutdown, let the pipeline drain, then stop the feed
    # ------------------------------------------------------------------
    exit_code = 0
    try:
        await shutdown_event.wait()
    finally:
        _logger.info("Shutting down, waiting for pipeline to drain")
        try:
            await task_pipeline
        except PipelineFatalError as exc:
            _logger.critical("Pipeline could not start: %s", exc)
            exit_code = 1
        except asyncio.CancelledError:
            _logger.info("Pipeline cancelled")
        except Exception as exc:
            _logger.critical("Pipeline task failed: %s", exc, exc_info=exc)
            exit_code = 1

        if pipeline.failure is not None:
            exit_code = 1

        feed_stop.set()
        feed_result = (await asyncio.gather(task_feed, return_exceptions=True))[0]
        if isinstance(feed_result, Exception):
            exit_code = 1

        await rpc_client.close()
        _logger.info("Shutdown complete")
    return exit_code


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Synchronous entry point."""
    try:
        exit_code = asyncio.run(_run())
    except KeyboardInterrupt:
        _logger.info("Interrupted by user")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
