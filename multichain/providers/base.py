import asyncio
import itertools
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from multichain.config import Settings, settings as default_settings
from multichain.exceptions import RPCProtocolError, RPCResponseError, RPCTransportError
from multichain.models import TransactionRequest


class BaseRPCProvider(ABC):
    """
    Capability interface over one JSON-RPC endpoint.

    Subclasses only implement :meth:`_send` (one request/response exchange over
    their transport) and :meth:`close`. The fixed operation set, request id
    bookkeeping, concurrency limiting, retries and error mapping live here.
    """

    def __init__(self, rpc_url: str, settings: Optional[Settings] = None) -> None:
        """
        Initialize the provider.

        Args:
            rpc_url (str): The endpoint URL for the RPC server.
            settings (Optional[Settings]): Runtime settings; module settings if omitted.

        Attributes:
            rpc_url (str): The endpoint URL for the RPC server.
            rate_limiter (asyncio.Semaphore): Bounds concurrent in-flight requests.
            _id_counter (itertools.count): Counter for generating unique request IDs.
            active_requests (Dict[int, Dict[str, Any]]): In-flight request ids and
                                                         their details.
            lock (asyncio.Lock): Guards updates to ``active_requests``.
        """
        self.rpc_url = rpc_url
        self.settings = settings or default_settings
        self.rate_limiter = asyncio.Semaphore(self.settings.rpc_rate_limit)

        # Request ID management
        self._id_counter = itertools.count(1)
        self.active_requests: Dict[int, Dict[str, Any]] = {}
        self.lock = asyncio.Lock()

    @abstractmethod
    async def _send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deliver one JSON-RPC request and return the decoded response object.

        Raises:
            RPCTransportError: On any failure below the JSON-RPC layer.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection resources."""

    async def __aenter__(self) -> "BaseRPCProvider":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def _generate_request_id(self, method: str) -> int:
        async with self.lock:
            request_id = next(self._id_counter)
            self.active_requests[request_id] = {
                "method": method,
                "timestamp": datetime.now(UTC),
            }
            return request_id

    async def _remove_request_id(self, request_id: int) -> None:
        async with self.lock:
            self.active_requests.pop(request_id, None)

    @property
    def in_flight(self) -> int:
        """Number of requests sent and not yet answered or abandoned."""
        return len(self.active_requests)

    async def _call(
        self,
        method: str,
        params: Optional[List[Any]] = None,
        retries: Optional[int] = None,
    ) -> Any:
        """
        Make a JSON-RPC call, retrying transport failures with exponential backoff.

        Protocol errors (a JSON-RPC ``error`` object) are never retried.

        Args:
            method (str): The name of the RPC method to call.
            params (Optional[List[Any]]): The parameters to pass to the RPC method.
            retries (Optional[int]): Total attempts; ``settings.max_rpc_retries``
                                     when omitted.

        Returns:
            Any: The ``result`` member of the response.

        Raises:
            RPCTransportError: If every attempt failed below the JSON-RPC layer.
            RPCProtocolError: If the endpoint returned a JSON-RPC error.
            RPCResponseError: If the response carries no ``result``.
        """
        attempts = max(1, retries if retries is not None else self.settings.max_rpc_retries)
        request_id = await self._generate_request_id(method)
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params or [],
        }

        try:
            attempt = 0
            while True:
                try:
                    async with self.rate_limiter:
                        data = await self._send(payload)
                    break
                except RPCTransportError as exc:
                    attempt += 1
                    if exc.method is None:
                        exc.method = method
                    if attempt >= attempts:
                        raise

                    delay = self.settings.rpc_backoff_factor * (2**attempt)
                    logger.warning(
                        f"{method} on {self.rpc_url} failed ({exc.message}), "
                        f"retrying in {delay:.2f}s [{attempt}/{attempts}]",
                    )
                    await asyncio.sleep(delay)
        finally:
            await self._remove_request_id(request_id)

        if "error" in data and data["error"] is not None:
            error = data["error"]
            if isinstance(error, dict):
                raise RPCProtocolError(
                    code=self._error_code(error.get("code")),
                    message=str(error.get("message", error)),
                    method=method,
                    data=error.get("data"),
                )
            raise RPCProtocolError(code=-32000, message=str(error), method=method)

        if "result" not in data:
            raise RPCResponseError(
                "Malformed JSON-RPC response: missing result",
                method=method,
            )
        return data["result"]

    @staticmethod
    def _error_code(code: Any) -> int:
        # Some nodes send non-numeric codes; keep the error a protocol error.
        if isinstance(code, bool):
            return -32000
        try:
            return int(code)
        except (TypeError, ValueError, OverflowError):
            return -32000

    @staticmethod
    def _to_int(value: Any, method: str) -> int:
        try:
            return int(value, 16) if isinstance(value, str) else int(value)
        except (TypeError, ValueError) as exc:
            raise RPCResponseError(
                f"Unexpected result {value!r}", method=method,
            ) from exc

    async def get_block_number(self) -> int:
        """Latest block number of the chain (``eth_blockNumber``)."""
        result = await self._call("eth_blockNumber")
        return self._to_int(result, "eth_blockNumber")

    async def get_balance(self, address: str, block: str = "latest") -> int:
        """Balance of ``address`` in the smallest native unit (``eth_getBalance``)."""
        result = await self._call("eth_getBalance", [address, block])
        return self._to_int(result, "eth_getBalance")

    async def get_gas_price(self) -> int:
        """Current gas price in wei (``eth_gasPrice``)."""
        result = await self._call("eth_gasPrice")
        return self._to_int(result, "eth_gasPrice")

    async def estimate_gas(self, transaction: TransactionRequest) -> int:
        """Gas estimate for ``transaction`` (``eth_estimateGas``)."""
        result = await self._call("eth_estimateGas", [transaction.to_rpc_params()])
        return self._to_int(result, "eth_estimateGas")

    async def send_transaction(self, transaction: TransactionRequest) -> str:
        """
        Submit ``transaction`` and return its hash (``eth_sendTransaction``).

        Submission is attempted exactly once; a retried submission could
        broadcast the transaction twice.
        """
        result = await self._call(
            "eth_sendTransaction",
            [transaction.to_rpc_params()],
            retries=1,
        )
        if not isinstance(result, str):
            raise RPCResponseError(
                f"Unexpected result {result!r}", method="eth_sendTransaction",
            )
        return result

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Raw receipt object, or ``None`` while the transaction is pending."""
        return await self._call("eth_getTransactionReceipt", [tx_hash])
