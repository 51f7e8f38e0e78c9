"""
Method-selector pre-filter.

Looks only at the first 4 bytes of call data and answers whether the call is
one of the allow-listed methods. Cheap enough to run on every pending
transaction before registry matching and decoding.
"""

from __future__ import annotations

from collections.abc import Mapping

from shared.constants import RELEVANT_SELECTORS, SELECTOR_BYTES, SELECTOR_HEX_LENGTH


def selector_of(input_data: str | bytes | None) -> str | None:
    """Return the lower-case 8-hex-char selector, or None if the data is too short."""
    if not input_data:
        return None
    if isinstance(input_data, (bytes, bytearray)):
        if len(input_data) < SELECTOR_BYTES:
            return None
        return bytes(input_data[:SELECTOR_BYTES]).hex()

    data = input_data[2:] if input_data[:2] in ("0x", "0X") else input_data
    if len(data) < SELECTOR_HEX_LENGTH:
        return None
    return data[:SELECTOR_HEX_LENGTH].lower()


class SelectorFilter:
    """Stateless allow-list predicate over call-data selectors."""

    def __init__(self, selectors: Mapping[str, str] = RELEVANT_SELECTORS) -> None:
        self._selectors = frozenset(s.lower().removeprefix("0x") for s in selectors)
        self._names = {s.lower().removeprefix("0x"): name for s, name in selectors.items()}

    def is_relevant(self, input_data: str | bytes | None) -> bool:
        selector = selector_of(input_data)
        return selector is not None and selector in self._selectors

    def method_name(self, input_data: str | bytes | None) -> str | None:
        """Allow-listed method name for the call data, if any."""
        selector = selector_of(input_data)
        if selector is None:
            return None
        return self._names.get(selector)

    def __len__(self) -> int:
        return len(self._selectors)
