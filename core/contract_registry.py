"""
Registry of monitored contracts.

Loaded once at startup from config/contracts.json and read-only afterwards,
so it is shared by all pipeline tasks without locking.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from web3 import Web3

from config.loader import get_config
from config.validate import ConfigValidationError, validate_contract_entry
from core.abi_decoder import build_interface
from shared.types import ContractDescriptor


def _normalize(address: str) -> str:
    return address.lower()


def load_contracts(
    entries: Iterable[Mapping[str, Any]],
    abi_loader: Callable[[str], list],
) -> list[ContractDescriptor]:
    """
    Build descriptors from {name, address, abi} or {name, address, abi_name} records.

    Raises ConfigValidationError on the first malformed record.
    """
    descriptors = []
    for index, entry in enumerate(entries):
        problems = validate_contract_entry(entry)
        if problems:
            label = entry.get("name", f"#{index}") if isinstance(entry, Mapping) else f"#{index}"
            raise ConfigValidationError(f"contract {label}: {'; '.join(problems)}")

        abi = entry["abi"] if "abi" in entry else abi_loader(entry["abi_name"])
        interface = build_interface(abi)
        if len(interface) == 0:
            raise ConfigValidationError(f"contract {entry['name']}: ABI defines no functions")

        descriptors.append(
            ContractDescriptor(
                name=entry["name"],
                address=Web3.to_checksum_address(entry["address"]),
                interface=interface,
            )
        )
    return descriptors


class ContractRegistry:
    """In-memory list of monitored contracts, matched by recipient address."""

    def __init__(self, descriptors: Iterable[ContractDescriptor]) -> None:
        self._descriptors: tuple[ContractDescriptor, ...] = tuple(descriptors)
        self._normalized = tuple(_normalize(d.address) for d in self._descriptors)

    @classmethod
    def from_config(cls) -> ContractRegistry:
        cfg = get_config()
        return cls(load_contracts(cfg.get_contracts_config(), cfg.get_abi))

    def match(self, address: str | None) -> ContractDescriptor | None:
        """First descriptor whose address equals ``address`` (case-insensitive)."""
        if not address:
            return None
        target = _normalize(address)
        for normalized, descriptor in zip(self._normalized, self._descriptors):
            if normalized == target:
                return descriptor
        return None

    @property
    def descriptors(self) -> tuple[ContractDescriptor, ...]:
        return self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)
