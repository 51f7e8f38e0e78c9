"""
ABI call-data decoder.

Resolves a method by its 4-byte selector within a contract interface, unpacks
the parameter payload with eth_abi and renders each parameter as a display
fragment. Address collections are annotated with token symbol/name from the
TokenMetadataResolver when enrichment is enabled.

Usage:
    interface = build_interface(abi)
    decoder = AbiDecoder(token_resolver)
    call = await decoder.decode(tx.input_data, interface)
    print(call.rendered)
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from eth_abi.abi import decode as abi_decode
from eth_abi.exceptions import DecodingError, ParseError
from web3 import Web3

from monitor_logging.logger_manager import setup_module_logger
from shared.constants import SELECTOR_BYTES, TOKEN_FETCH_FAILED_MARKER
from shared.types import (
    DecodedMethodCall,
    DecodedParam,
    InterfaceDefinition,
    MethodParam,
    MethodSpec,
)

if TYPE_CHECKING:
    from core.token_resolver import TokenMetadataResolver

# Elementary-type aliases that must be expanded before hashing a signature
_TYPE_ALIASES = {
    "uint": "uint256",
    "int": "int256",
    "byte": "bytes1",
    "fixed": "fixed128x18",
    "ufixed": "ufixed128x18",
}

_ADDRESS_COLLECTION = re.compile(r"^address\[\d*\]$")


class AbiDecoderError(Exception):
    """Base class for call-data decoding failures."""


class MethodNotFoundError(AbiDecoderError):
    """Raised when no method in the interface has the call's selector."""


class UnpackError(AbiDecoderError):
    """Raised when the payload does not match the method's declared types."""


# ---------------------------------------------------------------------------
# Interface construction
# ---------------------------------------------------------------------------


def canonical_type(param: Mapping[str, Any]) -> str:
    """Canonical ABI type for one input entry (tuples expanded recursively)."""
    abi_type: str = param["type"]
    if abi_type.startswith("tuple"):
        suffix = abi_type[len("tuple"):]
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){suffix}"
    base, bracket, dims = abi_type.partition("[")
    return _TYPE_ALIASES.get(base, base) + bracket + dims


def build_interface(abi: Iterable[Mapping[str, Any]]) -> InterfaceDefinition:
    """Index an ABI's functions by selector. Events, errors and fallbacks are skipped."""
    methods: dict[bytes, MethodSpec] = {}
    for entry in abi:
        if entry.get("type", "function") != "function" or not entry.get("name"):
            continue
        inputs = tuple(
            MethodParam(name=p.get("name") or f"arg{i}", type=canonical_type(p))
            for i, p in enumerate(entry.get("inputs", []))
        )
        signature = f"{entry['name']}({','.join(p.type for p in inputs)})"
        selector = bytes(Web3.keccak(text=signature)[:SELECTOR_BYTES])
        # First declaration wins on (vanishingly unlikely) selector clashes
        methods.setdefault(selector, MethodSpec(name=entry["name"], selector=selector, inputs=inputs))
    return InterfaceDefinition(methods=methods)


def _to_bytes(input_data: str | bytes) -> bytes:
    if isinstance(input_data, (bytes, bytearray)):
        return bytes(input_data)
    data = input_data[2:] if input_data[:2] in ("0x", "0X") else input_data
    try:
        return bytes.fromhex(data)
    except ValueError as exc:
        raise UnpackError(f"call data is not valid hex: {exc}") from exc


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------


class AbiDecoder:
    """
    Single decoder for raw call data against an InterfaceDefinition.

    ``enrich_tokens`` controls whether address collections are annotated with
    token metadata; it has no effect when no resolver is supplied.
    """

    def __init__(
        self,
        token_resolver: TokenMetadataResolver | None = None,
        enrich_tokens: bool = True,
    ) -> None:
        self._token_resolver = token_resolver
        self._enrich_tokens = enrich_tokens and token_resolver is not None
        self._logger = setup_module_logger(
            "abi_decoder", "abi_decoder.log", module_folder="Decoder_Logs"
        )

    @property
    def enrich_tokens(self) -> bool:
        return self._enrich_tokens

    # ------------------------------------------------------------------
    # Decoding steps
    # ------------------------------------------------------------------

    def resolve_method(self, input_data: str | bytes, interface: InterfaceDefinition) -> MethodSpec:
        data = _to_bytes(input_data)
        if len(data) < SELECTOR_BYTES:
            raise MethodNotFoundError("call data shorter than a selector")
        selector = data[:SELECTOR_BYTES]
        method = interface.method_by_selector(selector)
        if method is None:
            raise MethodNotFoundError(f"no method with selector 0x{selector.hex()}")
        return method

    def unpack(self, method: MethodSpec, input_data: str | bytes) -> tuple[Any, ...]:
        payload = _to_bytes(input_data)[SELECTOR_BYTES:]
        types = [p.type for p in method.inputs]
        try:
            return tuple(abi_decode(types, payload))
        except (DecodingError, ParseError, ValueError, OverflowError) as exc:
            raise UnpackError(
                f"cannot unpack {method.signature} from {len(payload)} bytes: {exc}"
            ) from exc

    async def render_params(
        self, method: MethodSpec, values: tuple[Any, ...]
    ) -> AsyncIterator[DecodedParam]:
        """Yield one rendered parameter at a time, in declaration order."""
        for param, value in zip(method.inputs, values):
            yield await self._render_param(param, value)

    async def decode(
        self, input_data: str | bytes, interface: InterfaceDefinition
    ) -> DecodedMethodCall:
        """Resolve, unpack and render a call. Raises MethodNotFoundError or UnpackError."""
        method = self.resolve_method(input_data, interface)
        values = self.unpack(method, input_data)
        params = [param async for param in self.render_params(method, values)]
        return DecodedMethodCall(
            method_name=method.name,
            selector=method.selector_hex,
            params=tuple(params),
        )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    async def _render_param(self, param: MethodParam, value: Any) -> DecodedParam:
        prefix = f"  {param.name} ({param.type})"

        if param.type == "address":
            checksum = Web3.to_checksum_address(value)
            return DecodedParam(param.name, param.type, checksum, f"{prefix}: {checksum}\n")

        if _ADDRESS_COLLECTION.match(param.type):
            addresses = tuple(Web3.to_checksum_address(a) for a in value)
            lines = [f"{prefix}:\n"]
            lines.extend(await self._render_address_lines(addresses))
            return DecodedParam(param.name, param.type, addresses, "".join(lines))

        return DecodedParam(param.name, param.type, value, f"{prefix}: {_format_value(value)}\n")

    async def _render_address_lines(self, addresses: tuple[str, ...]) -> list[str]:
        if not self._enrich_tokens or self._token_resolver is None:
            return [f"    - {address}\n" for address in addresses]

        results = await asyncio.gather(
            *(self._token_resolver.resolve(address) for address in addresses),
            return_exceptions=True,
        )
        lines = []
        for address, result in zip(addresses, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                self._logger.warning("Token lookup failed for %s: %s", address, result)
                lines.append(f"    - {address} ({TOKEN_FETCH_FAILED_MARKER})\n")
            else:
                lines.append(f"    - {address} ({result.symbol}: {result.name})\n")
        return lines
