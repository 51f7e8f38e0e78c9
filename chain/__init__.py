from chain.rpc_client import RpcClient, RpcError
from chain.subscription import PendingTransactionStream, StreamReadError, SubscriptionError

__all__ = [
    "PendingTransactionStream",
    "RpcClient",
    "RpcError",
    "StreamReadError",
    "SubscriptionError",
]
