"""
Shared data types for the mempool monitor.

Centralized dataclasses and enums used across all modules.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ListenerState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    STREAMING = "streaming"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Chain Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainEndpoints:
    ws_url: str
    http_url: str
    username: str = ""
    password: str = ""

    @property
    def has_credentials(self) -> bool:
        return bool(self.username)


@dataclass(frozen=True)
class TransactionRecord:
    """Snapshot of an ``eth_getTransactionByHash`` result (hex strings as sent by the node)."""

    hash: str
    from_address: str
    to_address: str | None  # None for contract creation
    value: str
    gas: str
    gas_price: str
    nonce: str
    input_data: str
    block_hash: str | None = None
    block_number: str | None = None
    transaction_index: str | None = None
    v: str | None = None
    r: str | None = None
    s: str | None = None

    @classmethod
    def from_rpc(cls, result: Mapping[str, Any]) -> TransactionRecord:
        # Some clients still send the legacy "data" key for call data
        input_data = result.get("input") or result.get("data") or "0x"
        return cls(
            hash=result.get("hash", ""),
            from_address=result.get("from", ""),
            to_address=result.get("to") or None,
            value=result.get("value", "0x0"),
            gas=result.get("gas", "0x0"),
            gas_price=result.get("gasPrice", "0x0"),
            nonce=result.get("nonce", "0x0"),
            input_data=input_data,
            block_hash=result.get("blockHash"),
            block_number=result.get("blockNumber"),
            transaction_index=result.get("transactionIndex"),
            v=result.get("v"),
            r=result.get("r"),
            s=result.get("s"),
        )


# ---------------------------------------------------------------------------
# Contract / ABI Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MethodParam:
    name: str
    type: str  # canonical ABI type, tuples expanded: "(address,uint256)[]"


@dataclass(frozen=True)
class MethodSpec:
    name: str
    selector: bytes  # 4 bytes
    inputs: tuple[MethodParam, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.type for p in self.inputs)})"

    @property
    def selector_hex(self) -> str:
        return self.selector.hex()


@dataclass(frozen=True)
class InterfaceDefinition:
    methods: Mapping[bytes, MethodSpec] = field(default_factory=dict)

    def method_by_selector(self, selector: bytes) -> MethodSpec | None:
        return self.methods.get(selector)

    def __len__(self) -> int:
        return len(self.methods)


@dataclass(frozen=True)
class ContractDescriptor:
    name: str
    address: str  # checksummed
    interface: InterfaceDefinition


# ---------------------------------------------------------------------------
# Decoding Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DecodedParam:
    name: str
    type: str
    value: Any  # addresses checksummed
    rendered: str  # display fragment, newline-terminated


@dataclass(frozen=True)
class DecodedMethodCall:
    method_name: str
    selector: str  # 8 hex chars
    params: tuple[DecodedParam, ...]

    @property
    def rendered(self) -> str:
        return "".join(p.rendered for p in self.params)


@dataclass(frozen=True)
class TokenInfo:
    address: str
    symbol: str
    name: str
    decimals: int  # 0-255


# ---------------------------------------------------------------------------
# Pipeline Output Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ThroughputSample:
    count: int
    window_seconds: float
    timestamp: float


@dataclass(frozen=True)
class PipelineStatus:
    state: ListenerState
    reason: str | None
    timestamp: float

    @property
    def is_stopped(self) -> bool:
        return self.state in (ListenerState.CLOSED, ListenerState.DISCONNECTED)
