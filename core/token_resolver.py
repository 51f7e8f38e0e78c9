"""
Token metadata resolver.

Resolves an ERC-20 address to {symbol, name, decimals} with three eth_call
reads and memoizes successful results for the lifetime of the process.
Concurrent lookups of the same unseen address share one in-flight fetch.

Usage:
    resolver = TokenMetadataResolver(rpc_client)
    info = await resolver.resolve("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48")
"""

from __future__ import annotations

import asyncio
import functools

from eth_abi.abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from chain.rpc_client import RpcClient, RpcError
from monitor_logging.logger_manager import setup_module_logger
from shared.constants import (
    ERC20_DECIMALS_SIGNATURE,
    ERC20_NAME_SIGNATURE,
    ERC20_SYMBOL_SIGNATURE,
    MAX_TOKEN_DECIMALS,
)
from shared.types import TokenInfo


def _selector_data(signature: str) -> str:
    return "0x" + Web3.keccak(text=signature)[:4].hex().removeprefix("0x")


_NAME_CALL = _selector_data(ERC20_NAME_SIGNATURE)
_SYMBOL_CALL = _selector_data(ERC20_SYMBOL_SIGNATURE)
_DECIMALS_CALL = _selector_data(ERC20_DECIMALS_SIGNATURE)

# Offset word + length word
_MIN_ABI_STRING_BYTES = 64


class TokenResolutionError(Exception):
    """Raised when any of the name/symbol/decimals reads fails or comes back empty."""


def decode_hex_string(value: str) -> str:
    """
    Turn a ``0x``-prefixed hex result into text.

    ABI-encoded strings are unwrapped; bytes32-style results are read as raw
    bytes with NUL padding stripped. Values that are not ``0x``-prefixed, not
    valid hex, or not valid UTF-8 are returned unchanged.
    """
    if not value.startswith("0x"):
        return value
    try:
        raw = bytes.fromhex(value[2:])
    except ValueError:
        return value

    if len(raw) >= _MIN_ABI_STRING_BYTES:
        try:
            return abi_decode(["string"], raw)[0].rstrip("\x00")
        except (DecodingError, ValueError, OverflowError):
            pass  # not ABI-encoded; read as raw bytes below

    try:
        return raw.decode("utf-8").rstrip("\x00")
    except UnicodeDecodeError:
        return value


def parse_decimals(value: str) -> int:
    """Parse a hex numeral decimals result, enforcing the uint8 range."""
    digits = value[2:] if value.startswith("0x") else value
    try:
        decimals = int(digits, 16)
    except ValueError as exc:
        raise TokenResolutionError(f"decimals is not a hex numeral: {value!r}") from exc
    if not 0 <= decimals <= MAX_TOKEN_DECIMALS:
        raise TokenResolutionError(f"decimals {decimals} outside 0-{MAX_TOKEN_DECIMALS}")
    return decimals


class TokenMetadataResolver:
    """Memoizing, single-flight ERC-20 metadata lookups over ``eth_call``."""

    def __init__(self, rpc_client: RpcClient) -> None:
        self._rpc = rpc_client
        self._cache: dict[str, TokenInfo] = {}
        self._in_flight: dict[str, asyncio.Task[TokenInfo]] = {}
        self._logger = setup_module_logger(
            "token_resolver", "token_resolver.log", module_folder="Token_Resolver_Logs"
        )

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cached(self, address: str) -> TokenInfo | None:
        return self._cache.get(Web3.to_checksum_address(address))

    async def resolve(self, address: str) -> TokenInfo:
        try:
            key = Web3.to_checksum_address(address)
        except ValueError as exc:
            raise TokenResolutionError(f"invalid token address {address!r}") from exc

        info = self._cache.get(key)
        if info is not None:
            return info

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._fetch(key), name=f"token:{key}")
            self._in_flight[key] = task
            task.add_done_callback(functools.partial(self._on_fetch_done, key))
        # Shield so one cancelled caller doesn't cancel the fetch for the others
        return await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_fetch_done(self, key: str, task: asyncio.Task[TokenInfo]) -> None:
        self._in_flight.pop(key, None)
        if not task.cancelled() and task.exception() is not None:
            exc = task.exception()
            self._logger.warning(
                "Resolution failed for %s: %s",
                key,
                exc,
                extra={"token_address": key, "error": str(exc)},
            )

    async def _fetch(self, key: str) -> TokenInfo:
        name = decode_hex_string(await self._read(key, _NAME_CALL, "name"))
        if not name:
            raise TokenResolutionError(f"{key}: name decoded to an empty string")

        symbol = decode_hex_string(await self._read(key, _SYMBOL_CALL, "symbol"))
        if not symbol:
            raise TokenResolutionError(f"{key}: symbol decoded to an empty string")

        decimals = parse_decimals(await self._read(key, _DECIMALS_CALL, "decimals"))

        info = TokenInfo(address=key, symbol=symbol, name=name, decimals=decimals)
        self._cache[key] = info
        self._logger.info("Resolved %s -> %s (%s, %d decimals)", key, symbol, name, decimals)
        return info

    async def _read(self, key: str, data: str, field: str) -> str:
        try:
            result = await self._rpc.eth_call(key, data)
        except RpcError as exc:
            raise TokenResolutionError(f"{key}: {field}() call failed: {exc}") from exc
        if not result or result == "0x":
            raise TokenResolutionError(f"{key}: {field}() returned no data")
        return result
