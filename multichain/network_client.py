from typing import Optional

from pydantic import ValidationError

from multichain.exceptions import RPCResponseError
from multichain.models import TransactionReceipt, TransactionRequest
from multichain.providers import BaseRPCProvider
from multichain.utils.timing import Clock, now_ms


class NetworkClient:
    """
    RPC binding for a single chain.

    A client wraps exactly one endpoint (``rpc_url``) through a provider and
    exposes the fixed operation set used by the manager. Clients are created
    and owned by :class:`~multichain.network_manager.NetworkClientManager`.

    Attributes:
        chain_id (str): Normalized chain id the client serves.
        rpc_url (str): Endpoint currently bound.
        provider (BaseRPCProvider): Transport-specific JSON-RPC implementation.
        endpoint_index (int): Position of ``rpc_url`` in the chain's URL list.
        created_at (int): Creation time, epoch milliseconds.
        last_active_at (int): Last access time, epoch milliseconds.
    """

    def __init__(
        self,
        chain_id: str,
        rpc_url: str,
        provider: BaseRPCProvider,
        endpoint_index: int = 0,
        clock: Clock = now_ms,
    ) -> None:
        self.chain_id = chain_id
        self.rpc_url = rpc_url
        self.provider = provider
        self.endpoint_index = endpoint_index
        self._clock = clock
        self.created_at = clock()
        self.last_active_at = self.created_at

    def __repr__(self) -> str:
        return f"NetworkClient(chain_id={self.chain_id!r}, rpc_url={self.rpc_url!r})"

    def touch(self) -> None:
        self.last_active_at = self._clock()

    @property
    def in_flight(self) -> int:
        return self.provider.in_flight

    async def get_block_number(self) -> int:
        return await self.provider.get_block_number()

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return await self.provider.get_balance(address, block)

    async def get_gas_price(self) -> int:
        return await self.provider.get_gas_price()

    async def estimate_gas(self, transaction: TransactionRequest) -> int:
        return await self.provider.estimate_gas(transaction)

    async def send_transaction(self, transaction: TransactionRequest) -> str:
        return await self.provider.send_transaction(transaction)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        raw = await self.provider.get_transaction_receipt(tx_hash)
        if not raw:
            return None
        try:
            return TransactionReceipt.model_validate(raw)
        except ValidationError as exc:
            raise RPCResponseError(
                f"Malformed receipt for {tx_hash}: {exc.error_count()} invalid fields",
                method="eth_getTransactionReceipt",
            ) from exc

    async def close(self) -> None:
        await self.provider.close()
