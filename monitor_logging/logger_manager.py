"""
Per-component file logging for the mempool monitor.

Every component (subscription, rpc client, pipeline, token resolver) writes
to its own file under ``logs/<Folder>/``. Nothing propagates to the root
logger, so stdout stays reserved for the console feed.

Log calls may attach transaction context through ``extra=``::

    logger.warning("%s on %s: %s", tx_hash, name, exc,
                   extra={"tx_hash": tx_hash, "contract": name})

Components listed under ``logging.json_loggers`` in app.json get one JSON
object per line with those fields as top-level keys; the rest get a
pipe-separated line with the fields appended as ``key=value``.

Matched transactions can also be traced end to end in the deep-dive log
(``deep_dive.enabled``) through :func:`log_data_entry` and
:func:`log_data_output`.
"""

import json
import logging
import os
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any

from config.loader import get_config

_logging_cfg: dict[str, Any] = get_config().get_app_config().get("logging", {})

_LOG_DIR = str(Path(__file__).parent.parent / _logging_cfg.get("log_dir", "logs"))
_MODULE_FOLDERS: dict[str, str] = _logging_cfg.get(
    "module_folders",
    {
        "pipeline": "Pipeline_Logs",
        "subscription": "Subscription_Logs",
        "rpc_client": "RPC_Client_Logs",
        "abi_decoder": "Decoder_Logs",
        "token_resolver": "Token_Resolver_Logs",
        "deep_dive": "Deep_Dive_Logs",
    },
)
_JSON_LOGGERS = frozenset(_logging_cfg.get("json_loggers", ()))

# Transaction context a log call may carry via ``extra=``
CONTEXT_FIELDS = ("trace_id", "tx_hash", "contract", "selector", "token_address", "error")


def _context_of(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


# ============================================================================
# FORMATTERS
# ============================================================================


class JSONFormatter(logging.Formatter):
    """One JSON object per line, transaction context as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(_context_of(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``time | LEVEL | logger | message [key=value ...]``"""

    FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-16s | %(message)s"
    DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

    def __init__(self) -> None:
        super().__init__(fmt=self.FORMAT, datefmt=self.DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_of(record)
        if not context:
            return line
        # Keep the traceback (if any) after the context suffix
        head, sep, tail = line.partition("\n")
        suffix = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{head} [{suffix}]{sep}{tail}"


# ============================================================================
# LOGGER FACTORY
# ============================================================================

_logger_cache: dict[str, logging.Logger] = {}


def create_module_log_directories() -> dict[str, str]:
    """Create ``logs/`` and one sub-folder per component; return key -> path."""
    created = {}
    os.makedirs(_LOG_DIR, exist_ok=True)
    for key, folder_name in _MODULE_FOLDERS.items():
        folder_path = os.path.join(_LOG_DIR, folder_name)
        os.makedirs(folder_path, exist_ok=True)
        created[key] = folder_path
    return created


def setup_module_logger(
    name: str,
    log_file: str,
    level: int = logging.INFO,
    module_folder: str | None = None,
    use_json_formatter: bool | None = None,
) -> logging.Logger:
    """
    Return the file logger for one component, creating it on first use.

    Args:
        name: Component name; also the key looked up in ``json_loggers``.
        log_file: File name inside ``module_folder`` (or ``logs/`` itself).
        level: Threshold for both the logger and its file handler.
        module_folder: Sub-folder of the log directory, e.g. 'Pipeline_Logs'.
        use_json_formatter: Force the formatter; None defers to app.json.
    """
    cache_key = f"{name}:{module_folder}:{log_file}"
    if cache_key in _logger_cache:
        return _logger_cache[cache_key]

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        folder = os.path.join(_LOG_DIR, module_folder) if module_folder else _LOG_DIR
        os.makedirs(folder, exist_ok=True)

        if use_json_formatter is None:
            use_json_formatter = name in _JSON_LOGGERS
        handler = logging.FileHandler(os.path.join(folder, log_file), mode="a", encoding="utf-8")
        handler.setLevel(level)
        handler.setFormatter(JSONFormatter() if use_json_formatter else HumanReadableFormatter())
        logger.addHandler(handler)

    _logger_cache[cache_key] = logger
    return logger


# ============================================================================
# DEEP-DIVE TRACE
# ============================================================================


@lru_cache(maxsize=1)
def get_deep_dive_logger() -> logging.Logger:
    return setup_module_logger(
        "deep_dive",
        "deep_dive_trace.log",
        module_folder=_MODULE_FOLDERS.get("deep_dive", "Deep_Dive_Logs"),
        use_json_formatter=True,
    )


def _trace(event: str, trace_id: str, **fields: Any) -> None:
    payload = {"event": event, "trace_id": trace_id, **fields}
    get_deep_dive_logger().info(json.dumps(payload, default=str), extra={"trace_id": trace_id})


def log_data_entry(
    trace_id: str,
    source_module: str,
    what: str,
    why: str,
    data_type: str,
    data: Any,
    previous_stage: str | None = None,
) -> None:
    """Record a transaction entering ``source_module``."""
    _trace(
        "DATA_ENTRY",
        trace_id,
        source_module=source_module,
        what=what,
        why=why,
        data_type=data_type,
        data=data,
        previous_stage=previous_stage,
    )


def log_data_output(
    trace_id: str,
    source_module: str,
    what: str,
    why: str,
    data_type: str,
    data: Any,
    next_stage: str,
) -> None:
    """Record ``source_module`` handing its result to ``next_stage``."""
    _trace(
        "DATA_OUTPUT",
        trace_id,
        source_module=source_module,
        what=what,
        why=why,
        data_type=data_type,
        data=data,
        next_stage=next_stage,
    )
