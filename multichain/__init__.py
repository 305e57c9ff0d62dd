from multichain.chain_manager import ChainManager
from multichain.config import Settings, settings
from multichain.events import (
    ChainAddedEvent,
    ChainChangedEvent,
    ChainRemovedEvent,
    EventBus,
    EventName,
    NetworkErrorEvent,
    Subscription,
)
from multichain.exceptions import (
    CannotRemoveActiveChainError,
    CannotRemoveDefaultChainError,
    ChainValidationError,
    ClientNotFoundError,
    DuplicateChainError,
    MultichainError,
    NetworkErrorType,
    RPCError,
    RPCProtocolError,
    RPCResponseError,
    RPCTransportError,
    TransactionCancelledError,
    TransactionTimeoutError,
    UnhealthyChainError,
    UnsupportedChainError,
)
from multichain.models import (
    ChainConfig,
    NativeCurrency,
    NetworkHealth,
    TransactionReceipt,
    TransactionRequest,
)
from multichain.network_manager import NetworkClientManager

__all__ = [
    "CannotRemoveActiveChainError",
    "CannotRemoveDefaultChainError",
    "ChainAddedEvent",
    "ChainChangedEvent",
    "ChainConfig",
    "ChainManager",
    "ChainRemovedEvent",
    "ChainValidationError",
    "ClientNotFoundError",
    "DuplicateChainError",
    "EventBus",
    "EventName",
    "MultichainError",
    "NativeCurrency",
    "NetworkClientManager",
    "NetworkErrorEvent",
    "NetworkErrorType",
    "NetworkHealth",
    "RPCError",
    "RPCProtocolError",
    "RPCResponseError",
    "RPCTransportError",
    "Settings",
    "Subscription",
    "TransactionCancelledError",
    "TransactionReceipt",
    "TransactionRequest",
    "TransactionTimeoutError",
    "UnhealthyChainError",
    "UnsupportedChainError",
    "settings",
]
