"""
Shared pytest configuration and fixtures for mempool monitor tests.

Provides sample addresses, a router ABI fragment, call-data builders and a
patched config loader used across the unit test suite.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from eth_abi import encode as abi_encode
from web3 import Web3

# ---------------------------------------------------------------------------
# Sample addresses and hashes
# ---------------------------------------------------------------------------

ROUTER_ADDRESS = "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"  # Uniswap V2 Router02
WETH_ADDRESS = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
DAI_ADDRESS = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
USDC_ADDRESS = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
SAMPLE_SENDER = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
UNRELATED_ADDRESS = "0x1234567890abcdef1234567890abcdef12345678"

SAMPLE_TX_HASH = "0x" + "ab" * 32
SAMPLE_BLOCK_HASH = "0x" + "00" * 32

# ---------------------------------------------------------------------------
# ABI fragment (subset of the Uniswap V2 router)
# ---------------------------------------------------------------------------

ROUTER_ABI = [
    {
        "type": "function",
        "name": "swapExactTokensForTokens",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
        ],
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
    },
    {
        "type": "function",
        "name": "swapExactETHForTokens",
        "stateMutability": "payable",
        "inputs": [
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
        ],
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
    },
    {
        "type": "function",
        "name": "removeLiquidityETHWithPermit",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "token", "type": "address"},
            {"name": "liquidity", "type": "uint256"},
            {"name": "amountTokenMin", "type": "uint256"},
            {"name": "amountETHMin", "type": "uint256"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
            {"name": "approveMax", "type": "bool"},
            {"name": "v", "type": "uint8"},
            {"name": "r", "type": "bytes32"},
            {"name": "s", "type": "bytes32"},
        ],
        "outputs": [],
    },
    {
        "type": "event",
        "name": "Sync",
        "inputs": [{"name": "reserve0", "type": "uint112", "indexed": False}],
    },
]

SWAP_EXACT_TOKENS_SELECTOR = "38ed1739"


def selector_hex(signature: str) -> str:
    return Web3.keccak(text=signature)[:4].hex().removeprefix("0x")


def build_call_data(signature: str, types: list[str], values: list) -> str:
    """0x-prefixed call data for ``signature`` with ABI-encoded ``values``."""
    return "0x" + selector_hex(signature) + abi_encode(types, values).hex()


def swap_exact_tokens_call(
    amount_in: int = 10**18,
    amount_out_min: int = 5 * 10**17,
    path: tuple[str, ...] = (WETH_ADDRESS, DAI_ADDRESS),
    to: str = SAMPLE_SENDER,
    deadline: int = 1_700_000_000,
) -> str:
    return build_call_data(
        "swapExactTokensForTokens(uint256,uint256,address[],address,uint256)",
        ["uint256", "uint256", "address[]", "address", "uint256"],
        [amount_in, amount_out_min, list(path), to, deadline],
    )


def rpc_transaction(
    to: str | None = ROUTER_ADDRESS,
    input_data: str = "0x",
    tx_hash: str = SAMPLE_TX_HASH,
) -> dict:
    """A pending ``eth_getTransactionByHash`` result object."""
    return {
        "hash": tx_hash,
        "from": SAMPLE_SENDER,
        "to": to,
        "value": "0x0",
        "gas": "0x30d40",
        "gasPrice": "0x4a817c800",
        "nonce": "0x7",
        "input": input_data,
        "blockHash": None,
        "blockNumber": None,
        "transactionIndex": None,
        "v": "0x25",
        "r": "0x" + "11" * 32,
        "s": "0x" + "22" * 32,
    }


# ---------------------------------------------------------------------------
# Standard mock configs
# ---------------------------------------------------------------------------

STANDARD_TIMING_CONFIG = {
    "pipeline": {
        "throughput_interval_seconds": 1.0,
        "max_concurrent_tasks": 0,
        "drain_timeout_seconds": 5.0,
    },
    "rpc": {"request_timeout_seconds": 10.0},
}

STANDARD_WEBSOCKET_CONFIG = {
    "connection": {
        "ping_interval_seconds": 20,
        "ping_timeout_seconds": 30,
        "close_timeout_seconds": 10,
        "max_message_bytes": 10485760,
    },
    "timeouts": {
        "open_timeout_seconds": 15,
        "subscription_response_timeout_seconds": 15,
    },
    "subscription": {"topic": "newPendingTransactions"},
}

STANDARD_APP_CONFIG = {
    "logging": {"log_dir": "logs"},
    "outputs": {
        "transactions_queue_size": 256,
        "details_queue_size": 1024,
        "throughput_queue_size": 16,
        "status_queue_size": 16,
    },
    "decoder": {"enrich_tokens": True},
    "deep_dive": {"enabled": False},
}


@pytest.fixture
def mock_config_loader():
    """
    Provide a mock ConfigLoader that returns standard configs.

    Usage in tests:
        def test_something(mock_config_loader):
            mock_config_loader.get_timing_config.return_value = {...}
    """
    loader = MagicMock()
    loader.get_timing_config.return_value = STANDARD_TIMING_CONFIG.copy()
    loader.get_websocket_config.return_value = STANDARD_WEBSOCKET_CONFIG.copy()
    loader.get_app_config.return_value = STANDARD_APP_CONFIG.copy()
    loader.get_contracts_config.return_value = [
        {"name": "Uniswap V2 Router", "address": ROUTER_ADDRESS, "abi": ROUTER_ABI},
    ]
    loader.get_abi.return_value = ROUTER_ABI
    return loader


# ---------------------------------------------------------------------------
# asyncio.Queue fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def output_queue():
    """Unbounded asyncio.Queue for feeds under test."""
    return asyncio.Queue()
