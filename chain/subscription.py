"""
Pending-transaction subscription over WebSocket.

Dials the node, sends ``eth_subscribe ["newPendingTransactions"]`` with a
basic-auth header and yields transaction hashes from the notification
stream. There is no reconnect: a read failure ends the stream for the run.

Usage:
    stream = PendingTransactionStream(ws_url, username, password)
    await stream.open()
    async for tx_hash in stream.hashes():
        ...
    await stream.close()
"""

from __future__ import annotations

import asyncio
import base64
import itertools
import json
from collections.abc import AsyncIterator
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from config.loader import get_config
from monitor_logging.logger_manager import setup_module_logger
from shared.constants import (
    DEFAULT_SUBSCRIBE_TIMEOUT_SECONDS,
    PENDING_TRANSACTIONS_TOPIC,
    RPC_SUBSCRIBE,
    RPC_SUBSCRIPTION_NOTIFICATION,
    RPC_UNSUBSCRIBE,
)


class SubscriptionError(Exception):
    """Raised when the dial or the eth_subscribe handshake fails."""


class StreamReadError(Exception):
    """Raised when the notification stream fails after subscribing."""


def basic_auth_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


def extract_tx_hash(message: dict[str, Any]) -> str | None:
    """Return the transaction hash carried by an ``eth_subscription`` notification."""
    if message.get("method") != RPC_SUBSCRIPTION_NOTIFICATION:
        return None
    params = message.get("params") or {}
    result = params.get("result")
    # Nodes subscribed with full=true push the whole transaction object
    if isinstance(result, dict):
        result = result.get("hash")
    if isinstance(result, str) and result:
        return result
    return None


class PendingTransactionStream:
    """One WebSocket connection carrying one pending-transaction subscription."""

    def __init__(self, ws_url: str, username: str = "", password: str = "") -> None:
        self._ws_url = ws_url
        self._auth_header = basic_auth_header(username, password) if username else None

        ws_cfg = get_config().get_websocket_config()
        conn_cfg = ws_cfg.get("connection", {})
        timeout_cfg = ws_cfg.get("timeouts", {})
        self._ping_interval: float = conn_cfg.get("ping_interval_seconds", 20)
        self._ping_timeout: float = conn_cfg.get("ping_timeout_seconds", 30)
        self._close_timeout: float = conn_cfg.get("close_timeout_seconds", 10)
        self._max_size: int = conn_cfg.get("max_message_bytes", 10 * 1024 * 1024)
        self._open_timeout: float = timeout_cfg.get("open_timeout_seconds", 15.0)
        self._subscribe_timeout: float = timeout_cfg.get(
            "subscription_response_timeout_seconds", DEFAULT_SUBSCRIBE_TIMEOUT_SECONDS
        )
        self._topic: str = ws_cfg.get("subscription", {}).get(
            "topic", PENDING_TRANSACTIONS_TOPIC
        )

        self._ws: Any = None
        self._subscription_id: str | None = None
        self._closing = False
        self._request_ids = itertools.count(1)

        self._logger = setup_module_logger(
            "subscription", "subscription.log", module_folder="Subscription_Logs"
        )

    @property
    def subscription_id(self) -> str | None:
        return self._subscription_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> str:
        """Dial the node and subscribe. Returns the subscription id."""
        headers = {"Authorization": self._auth_header} if self._auth_header else None
        self._logger.info("Connecting to %s", self._ws_url)
        try:
            self._ws = await websockets.connect(
                self._ws_url,
                additional_headers=headers,
                open_timeout=self._open_timeout,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
                close_timeout=self._close_timeout,
                max_size=self._max_size,
            )
        except asyncio.CancelledError:
            raise
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise SubscriptionError(f"dial {self._ws_url} failed: {exc!r}") from exc

        request_id = next(self._request_ids)
        request = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": RPC_SUBSCRIBE,
            "params": [self._topic],
        }
        try:
            await self._ws.send(json.dumps(request))
            raw = await asyncio.wait_for(self._ws.recv(), timeout=self._subscribe_timeout)
            response = json.loads(raw)
        except asyncio.CancelledError:
            raise
        except (ConnectionClosed, asyncio.TimeoutError, ValueError) as exc:
            await self._abort()
            raise SubscriptionError(f"{RPC_SUBSCRIBE} failed: {exc!r}") from exc

        if not isinstance(response, dict) or response.get("error") or not response.get("result"):
            error = response.get("error") if isinstance(response, dict) else response
            await self._abort()
            raise SubscriptionError(f"{RPC_SUBSCRIBE} rejected: {error}")

        self._subscription_id = str(response["result"])
        self._logger.info("Subscribed to %s (id=%s)", self._topic, self._subscription_id)
        return self._subscription_id

    async def hashes(self) -> AsyncIterator[str]:
        """Yield transaction hashes until the connection closes or fails."""
        if self._ws is None:
            raise StreamReadError("stream is not open")

        ws = self._ws
        while not self._closing:
            try:
                raw = await ws.recv()
            except ConnectionClosed as exc:
                if self._closing:
                    return
                raise StreamReadError(f"connection closed: {exc}") from exc
            except OSError as exc:
                raise StreamReadError(f"read failed: {exc!r}") from exc

            try:
                message = json.loads(raw)
            except ValueError:
                self._logger.warning("Ignoring non-JSON frame (%d bytes)", len(raw))
                continue
            if not isinstance(message, dict):
                continue

            tx_hash = extract_tx_hash(message)
            if tx_hash is not None:
                yield tx_hash

    async def close(self) -> None:
        """Close the connection; a pending ``hashes()`` read ends quietly."""
        self._closing = True
        if self._ws is None:
            return
        try:
            if self._subscription_id is not None:
                request = {
                    "jsonrpc": "2.0",
                    "id": next(self._request_ids),
                    "method": RPC_UNSUBSCRIBE,
                    "params": [self._subscription_id],
                }
                await self._ws.send(json.dumps(request))
            await self._ws.close()
        except (OSError, WebSocketException) as exc:
            self._logger.warning("Error while closing websocket: %r", exc)
        finally:
            self._ws = None
        self._logger.info("Subscription %s closed", self._subscription_id)

    async def _abort(self) -> None:
        try:
            await self._ws.close()
        except (OSError, WebSocketException) as exc:
            self._logger.debug("Close after failed subscribe raised %r", exc)
        self._ws = None
