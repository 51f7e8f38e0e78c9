"""
Shared constants for the mempool monitor.

Method selectors, JSON-RPC names and default values used across all modules.
"""

# ---------------------------------------------------------------------------
# Relevant method selectors (first 4 bytes of call data, lower-case hex)
# ---------------------------------------------------------------------------

UNISWAP_V2_ROUTER_SELECTORS = {
    "38ed1739": "swapExactTokensForTokens",
    "8803dbee": "swapTokensForExactTokens",
    "7ff36ab5": "swapExactETHForTokens",
    "4a25d94a": "swapTokensForExactETH",
    "18cbafe5": "swapExactTokensForETH",
    "fb3bdb41": "swapETHForExactTokens",
    "e8e33700": "addLiquidity",
    "f305d719": "addLiquidityETH",
    "baa2abde": "removeLiquidity",
    "02751cec": "removeLiquidityETH",
}

WETH_SELECTORS = {
    "d0e30db0": "deposit",
    "2e1a7d4d": "withdraw",
    "095ea7b3": "approve",
    "a9059cbb": "transfer",
    "23b872dd": "transferFrom",
}

RELEVANT_SELECTORS: dict[str, str] = {**UNISWAP_V2_ROUTER_SELECTORS, **WETH_SELECTORS}

SELECTOR_BYTES = 4
SELECTOR_HEX_LENGTH = SELECTOR_BYTES * 2

# ---------------------------------------------------------------------------
# ERC-20 metadata getters
# ---------------------------------------------------------------------------

ERC20_NAME_SIGNATURE = "name()"
ERC20_SYMBOL_SIGNATURE = "symbol()"
ERC20_DECIMALS_SIGNATURE = "decimals()"

MAX_TOKEN_DECIMALS = 255  # uint8

# ---------------------------------------------------------------------------
# JSON-RPC
# ---------------------------------------------------------------------------

RPC_GET_TRANSACTION_BY_HASH = "eth_getTransactionByHash"
RPC_CALL = "eth_call"
RPC_SUBSCRIBE = "eth_subscribe"
RPC_UNSUBSCRIBE = "eth_unsubscribe"
RPC_SUBSCRIPTION_NOTIFICATION = "eth_subscription"

PENDING_TRANSACTIONS_TOPIC = "newPendingTransactions"

# ---------------------------------------------------------------------------
# Default Values
# ---------------------------------------------------------------------------

DEFAULT_THROUGHPUT_INTERVAL_SECONDS = 1.0
DEFAULT_MAX_CONCURRENT_TASKS = 0  # 0 = unbounded fan-out
DEFAULT_DRAIN_TIMEOUT_SECONDS = 5.0
DEFAULT_RPC_TIMEOUT_SECONDS = 10.0
DEFAULT_SUBSCRIBE_TIMEOUT_SECONDS = 15.0
DEFAULT_QUEUE_SIZE = 256

TOKEN_FETCH_FAILED_MARKER = "Token details fetch failed"
