"""Error taxonomy raised by the chain and network client managers."""

from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from multichain.models import NetworkHealth


class NetworkErrorType(str, Enum):
    """Classification attached to ``networkError`` events."""

    CONNECTION_TIMEOUT = "connection_timeout"
    CONNECTION_REFUSED = "connection_refused"
    RPC_ERROR = "rpc_error"
    NETWORK_UNREACHABLE = "network_unreachable"
    SSL_ERROR = "ssl_error"
    DNS_ERROR = "dns_error"
    CLIENT_NOT_FOUND = "client_not_found"
    TRANSACTION_TIMEOUT = "transaction_timeout"
    TRANSACTION_CANCELLED = "transaction_cancelled"
    UNKNOWN = "unknown"


class MultichainError(Exception):
    """Base class for every error raised by this package."""

    error_type: NetworkErrorType = NetworkErrorType.UNKNOWN


class ChainValidationError(MultichainError, ValueError):
    """A chain configuration failed validation."""

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Invalid chain configuration: {', '.join(self.errors)}")


class UnsupportedChainError(MultichainError):
    def __init__(self, chain_id: str) -> None:
        self.chain_id = chain_id
        super().__init__(f"Unsupported chain ID: {chain_id}")


class DuplicateChainError(MultichainError):
    def __init__(self, chain_id: str) -> None:
        self.chain_id = chain_id
        super().__init__(f"Chain {chain_id} is already supported")


class CannotRemoveDefaultChainError(MultichainError):
    def __init__(self, chain_id: str) -> None:
        self.chain_id = chain_id
        super().__init__(f"Cannot remove default chain {chain_id}")


class CannotRemoveActiveChainError(MultichainError):
    def __init__(self, chain_id: str) -> None:
        self.chain_id = chain_id
        super().__init__(f"Cannot remove currently active chain {chain_id}")


class ClientNotFoundError(MultichainError):
    error_type = NetworkErrorType.CLIENT_NOT_FOUND

    def __init__(self, chain_id: str) -> None:
        self.chain_id = chain_id
        super().__init__(f"Network client not found for chain {chain_id}")


class UnhealthyChainError(MultichainError):
    """A chain switch was refused because the target failed its health check."""

    def __init__(self, chain_id: str, health: "NetworkHealth") -> None:
        self.chain_id = chain_id
        self.health = health
        detail = f": {health.error}" if health.error else ""
        super().__init__(f"Target network {chain_id} is not healthy{detail}")


class RPCError(MultichainError):
    """Transport or protocol failure talking to an RPC endpoint."""

    error_type = NetworkErrorType.RPC_ERROR

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        error_type: Optional[NetworkErrorType] = None,
    ) -> None:
        self.message = message
        self.method = method
        if error_type is not None:
            self.error_type = error_type
        prefix = f"RPC {method} failed: " if method else ""
        super().__init__(f"{prefix}{message}")


class RPCTransportError(RPCError):
    """HTTP status, connection, timeout or socket level failure."""


class RPCResponseError(RPCError):
    """The endpoint answered, but the result could not be decoded. Never retried."""


class RPCProtocolError(RPCError):
    """The endpoint answered with a JSON-RPC ``error`` object."""

    def __init__(
        self,
        code: int,
        message: str,
        method: Optional[str] = None,
        data: Any = None,
    ) -> None:
        self.code = code
        self.data = data
        super().__init__(f"[{code}] {message}", method=method)


class TransactionTimeoutError(MultichainError):
    error_type = NetworkErrorType.TRANSACTION_TIMEOUT

    def __init__(self, tx_hash: str, attempts: int) -> None:
        self.tx_hash = tx_hash
        self.attempts = attempts
        super().__init__(
            f"Transaction {tx_hash} was not confirmed after {attempts} attempts",
        )


class TransactionCancelledError(MultichainError):
    error_type = NetworkErrorType.TRANSACTION_CANCELLED

    def __init__(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash
        super().__init__(f"Waiting for transaction {tx_hash} was cancelled")
