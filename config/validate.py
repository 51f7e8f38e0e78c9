"""
Configuration validation for the mempool monitor.

Validates that the monitored-contract list and the node endpoints are
present and well formed. Run at startup to fail fast on misconfiguration.
"""

from typing import Any

from web3 import Web3

from config.loader import get_config, load_endpoints
from shared.types import ChainEndpoints


class ConfigValidationError(ValueError):
    """Raised when a required config key is missing or invalid."""

    pass


def validate_contract_entry(entry: Any) -> list[str]:
    """Validate one {name, address, abi | abi_name} record. Returns list of problems."""
    if not isinstance(entry, dict):
        return ["entry must be an object"]

    errors = []
    for key in ("name", "address"):
        if not entry.get(key):
            errors.append(f"missing: {key}")

    address = entry.get("address")
    if address and not Web3.is_address(address):
        errors.append(f"invalid address: {address}")

    if "abi" in entry:
        if not isinstance(entry["abi"], list):
            errors.append("abi: must be a list of ABI entries")
    elif not entry.get("abi_name"):
        errors.append("missing: abi or abi_name")
    return errors


def validate_contracts_config(entries: Any) -> list[str]:
    """Validate contracts.json. Returns a flat list of problems."""
    if not isinstance(entries, list) or len(entries) == 0:
        return ["contracts: must be a non-empty list"]

    errors = []
    for index, entry in enumerate(entries):
        label = entry.get("name", f"#{index}") if isinstance(entry, dict) else f"#{index}"
        for problem in validate_contract_entry(entry):
            errors.append(f"{label}: {problem}")
    return errors


def validate_endpoints(endpoints: ChainEndpoints) -> list[str]:
    """Validate node endpoints read from the environment."""
    errors = []
    if not endpoints.ws_url:
        errors.append("missing: WS_ENDPOINT")
    elif not endpoints.ws_url.startswith(("ws://", "wss://")):
        errors.append(f"WS_ENDPOINT must be a ws:// or wss:// URL: {endpoints.ws_url}")
    if not endpoints.http_url:
        errors.append("missing: HTTPS_ENDPOINT")
    elif not endpoints.http_url.startswith(("http://", "https://")):
        errors.append(f"HTTPS_ENDPOINT must be an http(s):// URL: {endpoints.http_url}")
    if bool(endpoints.username) != bool(endpoints.password):
        errors.append("RPC_USERNAME and RPC_PASSWORD must be set together")
    return errors


def validate_all_configs() -> None:
    """
    Validate contracts.json and the endpoint environment. Raises
    ConfigValidationError with details if anything is missing.
    """
    loader = get_config()
    all_errors: dict[str, list[str]] = {}

    contract_errors = validate_contracts_config(loader.get_contracts_config())
    if contract_errors:
        all_errors["contracts.json"] = contract_errors

    endpoint_errors = validate_endpoints(load_endpoints())
    if endpoint_errors:
        all_errors["environment"] = endpoint_errors

    if all_errors:
        lines = ["Configuration validation failed:"]
        for config_name, errors in all_errors.items():
            lines.append(f"\n  {config_name}:")
            for error in errors:
                lines.append(f"    - {error}")
        raise ConfigValidationError("\n".join(lines))
