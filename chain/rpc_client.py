"""
JSON-RPC HTTP client for the mempool monitor.

Thin async wrapper over aiohttp for the two request/response calls the
pipeline needs: ``eth_getTransactionByHash`` and ``eth_call``. Basic-auth
credentials are attached to every request.

Usage:
    client = RpcClient(endpoints.http_url, username, password)
    record = await client.get_transaction_by_hash(tx_hash)
    await client.close()
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, cast

import aiohttp

from config.loader import get_config
from monitor_logging.logger_manager import setup_module_logger
from shared.constants import (
    DEFAULT_RPC_TIMEOUT_SECONDS,
    RPC_CALL,
    RPC_GET_TRANSACTION_BY_HASH,
)
from shared.types import TransactionRecord


class RpcError(Exception):
    """Raised when a JSON-RPC request fails (transport, HTTP status, or RPC error object)."""


class RpcClient:
    """
    Async JSON-RPC client over HTTP POST.

    The aiohttp session is created lazily and can be injected for tests.
    """

    def __init__(
        self,
        http_url: str,
        username: str = "",
        password: str = "",
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._http_url = http_url
        self._auth = aiohttp.BasicAuth(username, password) if username else None
        self._session = session
        self._request_ids = itertools.count(1)

        timing_cfg = get_config().get_timing_config().get("rpc", {})
        self._timeout: float = timing_cfg.get(
            "request_timeout_seconds", DEFAULT_RPC_TIMEOUT_SECONDS
        )

        self._logger = setup_module_logger(
            "rpc_client", "rpc_client.log", module_folder="RPC_Client_Logs"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def call(self, method: str, params: list[Any]) -> Any:
        """Send one JSON-RPC request and return its ``result`` member."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }

        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        try:
            async with session.post(
                self._http_url, json=payload, auth=self._auth, timeout=timeout
            ) as resp:
                resp.raise_for_status()
                body = cast(dict[str, Any], await resp.json(content_type=None))
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise RpcError(f"{method} request failed: {exc!r}") from exc

        if not isinstance(body, dict):
            raise RpcError(f"{method} returned a non-object response")
        if body.get("error"):
            error = body["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise RpcError(f"{method} returned error: {message}")
        return body.get("result")

    async def get_transaction_by_hash(self, tx_hash: str) -> TransactionRecord | None:
        """
        Fetch a transaction by hash.

        Returns None when the node no longer (or not yet) knows the hash.
        """
        result = await self.call(RPC_GET_TRANSACTION_BY_HASH, [tx_hash])
        if result is None:
            self._logger.debug("Transaction %s not found", tx_hash)
            return None
        if not isinstance(result, dict):
            raise RpcError(f"{RPC_GET_TRANSACTION_BY_HASH} returned unexpected result type")
        return TransactionRecord.from_rpc(result)

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        """Execute a read-only contract call and return the raw hex result."""
        result = await self.call(RPC_CALL, [{"to": to, "data": data}, block])
        if result is None:
            return ""
        return str(result)

    async def close(self) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session
