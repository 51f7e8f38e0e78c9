"""
Configuration loader for the mempool monitor.

Provides centralized configuration management with .env overrides.

Usage:
    from config.loader import get_config, load_endpoints

    config = get_config()
    timing = config.get_timing_config()
    endpoints = load_endpoints()
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from shared.types import ChainEndpoints

load_dotenv()

# Resolve config directory relative to this file
_CONFIG_DIR = Path(__file__).parent


def _load_json(filepath: Path, default: Any = None) -> Any:
    """Load a JSON config file. Returns ``default`` (empty dict) if the file doesn't exist."""
    if default is None:
        default = {}
    try:
        with open(filepath, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        print(f"[CONFIG_WARN] Config file not found: {filepath}")
        return default
    except json.JSONDecodeError as e:
        print(f"[CONFIG_ERROR] Invalid JSON in {filepath}: {e}")
        return default


def get_env_var(var_name: str, default_value: Any, var_type: type) -> Any:
    """Get environment variable with type conversion and fallback."""
    value = os.getenv(var_name, None)
    if value is None:
        return default_value
    try:
        if var_type == bool:
            return value.lower() in ("true", "1", "yes")
        return var_type(value)
    except (ValueError, TypeError):
        return default_value


def load_endpoints() -> ChainEndpoints:
    """Read node endpoints and basic-auth credentials from the environment."""
    return ChainEndpoints(
        ws_url=os.getenv("WS_ENDPOINT", ""),
        http_url=os.getenv("HTTPS_ENDPOINT", ""),
        username=os.getenv("RPC_USERNAME", ""),
        password=os.getenv("RPC_PASSWORD", ""),
    )


class ConfigLoader:
    """
    Central configuration manager for the mempool monitor.

    Loads configuration from JSON files in the config/ directory.
    All accessor methods are cached via @lru_cache.
    """

    _instance: Optional["ConfigLoader"] = None

    def __init__(self):
        self._config_dir = _CONFIG_DIR

    @classmethod
    def get_instance(cls) -> "ConfigLoader":
        """Singleton accessor."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    # ------------------------------------------------------------------
    # Core config file loaders (cached)
    # ------------------------------------------------------------------

    @lru_cache(maxsize=1)
    def get_app_config(self) -> Dict[str, Any]:
        """Load general application settings (logging, outputs, decoder)."""
        return _load_json(self._config_dir / "app.json")

    @lru_cache(maxsize=1)
    def get_timing_config(self) -> Dict[str, Any]:
        """Load pipeline intervals and RPC timeouts."""
        return _load_json(self._config_dir / "timing.json")

    @lru_cache(maxsize=1)
    def get_websocket_config(self) -> Dict[str, Any]:
        """Load WebSocket connection settings."""
        return _load_json(self._config_dir / "websocket.json")

    @lru_cache(maxsize=1)
    def get_contracts_config(self) -> List[Dict[str, Any]]:
        """Load the list of monitored contracts ({name, address, abi | abi_name})."""
        data = _load_json(self._config_dir / "contracts.json", default=[])
        if isinstance(data, dict):
            return data.get("contracts", [])
        return data

    # ------------------------------------------------------------------
    # ABI loader
    # ------------------------------------------------------------------

    @lru_cache(maxsize=32)
    def get_abi(self, abi_name: str) -> list:
        """Load ABI from config/abis/<abi_name>.json."""
        data = _load_json(self._config_dir / "abis" / f"{abi_name}.json")
        # ABI files are either raw arrays or {"abi": [...]}
        if isinstance(data, list):
            return data
        return data.get("abi", [])

    # ------------------------------------------------------------------
    # Arbitrary config file loader
    # ------------------------------------------------------------------

    @lru_cache(maxsize=16)
    def get_config_file(self, config_name: str) -> Dict[str, Any]:
        """Load an arbitrary JSON config file from config/ directory."""
        return _load_json(self._config_dir / f"{config_name}.json")

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        """Clear all cached configurations (useful for testing)."""
        for method_name in dir(self):
            method = getattr(self, method_name)
            if hasattr(method, "cache_clear"):
                method.cache_clear()


# ---------------------------------------------------------------------------
# Module-level convenience functions
# ---------------------------------------------------------------------------

def get_config() -> ConfigLoader:
    """Get the singleton ConfigLoader instance."""
    return ConfigLoader.get_instance()
