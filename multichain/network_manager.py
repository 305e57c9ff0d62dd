import asyncio
import time
from typing import Callable, Dict, Optional

from loguru import logger

from multichain.config import Settings, settings as default_settings
from multichain.exceptions import (
    ClientNotFoundError,
    RPCError,
    RPCProtocolError,
    RPCTransportError,
    TransactionCancelledError,
    TransactionTimeoutError,
)
from multichain.models import (
    ChainConfig,
    NetworkHealth,
    TransactionReceipt,
    TransactionRequest,
)
from multichain.network_client import NetworkClient
from multichain.providers import BaseRPCProvider, create_provider
from multichain.utils.decorators import log_execution
from multichain.utils.timing import Clock, elapsed_ms, now_ms
from multichain.validator import normalize_chain_id

ProviderFactory = Callable[[str, Settings], BaseRPCProvider]

# Seconds between checks for a retired client to drain.
_DRAIN_POLL_INTERVAL = 0.05

# Error messages nodes return for receipts of transactions that are not mined yet.
_PENDING_RECEIPT_MARKERS = (
    "transaction not found",
    "unknown transaction",
    "not yet mined",
    "transaction indexing is in progress",
)


def _is_pending_receipt_error(exc: RPCProtocolError) -> bool:
    message = exc.message.lower()
    return any(marker in message for marker in _PENDING_RECEIPT_MARKERS)


class NetworkClientManager:
    """
    Owns one :class:`NetworkClient` per chain and the per-chain health cache.

    Health checks never raise: failures are encoded in the returned
    :class:`NetworkHealth`. Every other operation raises
    :class:`ClientNotFoundError` for unknown chains and :class:`RPCError`
    subclasses for endpoint failures. Operations on different chains are
    independent coroutines; the map lock is never held across an RPC call.

    Attributes:
        clients (Dict[str, NetworkClient]): Clients keyed by normalized chain id.
        health_cache (Dict[str, NetworkHealth]): Last health result per chain.
        lock (asyncio.Lock): Serializes client map mutations that await.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider_factory: ProviderFactory = create_provider,
        clock: Clock = now_ms,
    ) -> None:
        self.settings = settings or default_settings
        self._provider_factory = provider_factory
        self._clock = clock
        self.clients: Dict[str, NetworkClient] = {}
        self.health_cache: Dict[str, NetworkHealth] = {}
        self._configs: Dict[str, ChainConfig] = {}
        self._retiring: Dict[asyncio.Task, NetworkClient] = {}
        self.lock = asyncio.Lock()

    def _build_client(self, config: ChainConfig, endpoint_index: int) -> NetworkClient:
        rpc_url = config.rpc_urls[endpoint_index]
        return NetworkClient(
            chain_id=normalize_chain_id(config.chain_id),
            rpc_url=rpc_url,
            provider=self._provider_factory(rpc_url, self.settings),
            endpoint_index=endpoint_index,
            clock=self._clock,
        )

    def create_client(self, config: ChainConfig) -> NetworkClient:
        """
        Create the client for ``config`` bound to its first RPC URL.

        An existing client for the same chain is replaced and closed.
        """
        chain_id = normalize_chain_id(config.chain_id)
        client = self._build_client(config, 0)
        previous = self.clients.get(chain_id)
        self.clients[chain_id] = client
        self._configs[chain_id] = config
        if previous is not None:
            self._retire(previous)
        logger.info(f"Created network client for chain {chain_id} at {client.rpc_url}")
        return client

    def get_client(self, chain_id: str) -> Optional[NetworkClient]:
        client = self.clients.get(normalize_chain_id(chain_id))
        if client is not None:
            client.touch()
        return client

    def _require_client(self, chain_id: str) -> NetworkClient:
        client = self.get_client(chain_id)
        if client is None:
            raise ClientNotFoundError(chain_id)
        return client

    def get_all_clients(self) -> Dict[str, NetworkClient]:
        return dict(self.clients)

    async def remove_client(self, chain_id: str) -> None:
        """Drop the client and cached health of a chain. Idempotent."""
        chain_id = normalize_chain_id(chain_id)
        async with self.lock:
            client = self.clients.pop(chain_id, None)
            self.health_cache.pop(chain_id, None)
            self._configs.pop(chain_id, None)
        if client is not None:
            await client.close()
            logger.info(f"Removed network client for chain {chain_id}")

    async def clear_all(self) -> None:
        """Close and drop every client and health entry."""
        async with self.lock:
            clients = list(self.clients.values())
            retiring = dict(self._retiring)
            self.clients.clear()
            self.health_cache.clear()
            self._configs.clear()
            self._retiring.clear()

        for task, client in retiring.items():
            task.cancel()
            clients.append(client)
        for client in clients:
            await client.close()

    async def aclose(self) -> None:
        await self.clear_all()

    def _retire(self, client: NetworkClient) -> None:
        # In-flight calls may still hold the old client; close it once they
        # finish or a full request timeout has passed.
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._close_later(client))
        self._retiring[task] = client
        task.add_done_callback(lambda done: self._retiring.pop(done, None))

    async def _close_later(self, client: NetworkClient) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.rpc_timeout
        while client.in_flight and loop.time() < deadline:
            await asyncio.sleep(_DRAIN_POLL_INTERVAL)
        if client.in_flight:
            logger.warning(
                f"Closing {client.rpc_url} with {client.in_flight} requests in flight",
            )
        await client.close()

    async def _rotate_endpoint(self, chain_id: str, failed: NetworkClient) -> None:
        config = self._configs.get(chain_id)
        if config is None or len(config.rpc_urls) < 2:
            return

        async with self.lock:
            if self.clients.get(chain_id) is not failed:
                return
            next_index = (failed.endpoint_index + 1) % len(config.rpc_urls)
            replacement = self._build_client(config, next_index)
            self.clients[chain_id] = replacement

        logger.warning(
            f"Chain {chain_id}: failing over from {failed.rpc_url} "
            f"to {replacement.rpc_url}",
        )
        self._retire(failed)

    def _is_current(self, chain_id: str, client: NetworkClient) -> bool:
        # Probes that outlive their client must not write to the cache.
        return self.clients.get(chain_id) is client

    @log_execution()
    async def check_network_health(self, chain_id: str) -> NetworkHealth:
        """
        Probe a chain by timing one ``eth_blockNumber`` call.

        The result is cached, healthy or not, unless the client was removed or
        replaced while the probe ran. A missing client yields an unhealthy
        result without touching the cache.
        """
        chain_id = normalize_chain_id(chain_id)
        client = self.get_client(chain_id)
        if client is None:
            return NetworkHealth(
                is_healthy=False,
                error="Client not found",
                last_checked=self._clock(),
            )

        previous = self.health_cache.get(chain_id)
        timeout = self.settings.health_check_timeout
        start = time.perf_counter()
        try:
            block_number = await asyncio.wait_for(
                client.get_block_number(), timeout=timeout,
            )
        except asyncio.TimeoutError:
            error = f"Health check timed out after {timeout}s"
        except RPCError as exc:
            error = str(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"Unexpected error checking health of chain {chain_id}")
            error = str(exc) or exc.__class__.__name__
        else:
            health = NetworkHealth(
                is_healthy=True,
                latency=elapsed_ms(start),
                block_number=block_number,
                last_checked=self._clock(),
                failure_count=0,
                rpc_url=client.rpc_url,
            )
            if self._is_current(chain_id, client):
                self.health_cache[chain_id] = health
            return health

        health = NetworkHealth(
            is_healthy=False,
            error=error,
            last_checked=self._clock(),
            failure_count=(previous.failure_count if previous else 0) + 1,
            rpc_url=client.rpc_url,
        )
        if not self._is_current(chain_id, client):
            logger.debug(f"Discarding health result for replaced or removed chain {chain_id}")
            return health

        self.health_cache[chain_id] = health
        logger.warning(
            f"Chain {chain_id} unhealthy at {client.rpc_url} "
            f"({health.failure_count} consecutive failures): {error}",
        )

        if self.settings.endpoint_failover:
            await self._rotate_endpoint(chain_id, client)
        return health

    def get_cached_health(self, chain_id: str) -> Optional[NetworkHealth]:
        """Cached health if it is at most ``health_cache_ttl_ms`` old, else ``None``."""
        health = self.health_cache.get(normalize_chain_id(chain_id))
        if health is None:
            return None
        if self._clock() - health.last_checked > self.settings.health_cache_ttl_ms:
            return None
        return health

    async def get_block_number(self, chain_id: str) -> int:
        return await self._require_client(chain_id).get_block_number()

    async def get_balance(self, chain_id: str, address: str, block: str = "latest") -> int:
        return await self._require_client(chain_id).get_balance(address, block)

    async def get_gas_price(self, chain_id: str) -> int:
        return await self._require_client(chain_id).get_gas_price()

    async def estimate_gas(self, chain_id: str, transaction: TransactionRequest) -> int:
        return await self._require_client(chain_id).estimate_gas(transaction)

    async def get_transaction_receipt(
        self,
        chain_id: str,
        tx_hash: str,
    ) -> Optional[TransactionReceipt]:
        """
        Fetch the receipt of ``tx_hash``.

        Returns ``None`` while the transaction is not mined, including when the
        node reports that as a JSON-RPC error.
        """
        client = self._require_client(chain_id)
        try:
            return await client.get_transaction_receipt(tx_hash)
        except RPCProtocolError as exc:
            if _is_pending_receipt_error(exc):
                return None
            raise

    async def submit_transaction(self, chain_id: str, transaction: TransactionRequest) -> str:
        tx_hash = await self._require_client(chain_id).send_transaction(transaction)
        logger.info(f"Submitted transaction {tx_hash} on chain {normalize_chain_id(chain_id)}")
        return tx_hash

    async def wait_for_transaction_receipt(
        self,
        chain_id: str,
        tx_hash: str,
        *,
        attempts: Optional[int] = None,
        interval: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionReceipt:
        """
        Poll for the receipt of ``tx_hash`` until it is mined.

        Only reads are retried; the transaction is never re-submitted, so the
        wait can be cancelled or abandoned at any point.

        Args:
            chain_id (str): Chain the transaction was submitted to.
            tx_hash (str): Transaction hash.
            attempts (Optional[int]): Receipt lookups before giving up.
            interval (Optional[float]): Seconds to sleep between lookups.
            cancel_event (Optional[asyncio.Event]): Setting it stops the wait.

        Raises:
            TransactionTimeoutError: No receipt after ``attempts`` lookups.
            TransactionCancelledError: ``cancel_event`` was set.
            ClientNotFoundError: The chain's client was removed.
            RPCProtocolError: The node rejected the lookup.
            RPCResponseError: The node returned an undecodable receipt.
        """
        attempts = attempts if attempts is not None else self.settings.receipt_poll_attempts
        interval = interval if interval is not None else self.settings.receipt_poll_interval

        for attempt in range(1, attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise TransactionCancelledError(tx_hash)

            try:
                receipt = await self.get_transaction_receipt(chain_id, tx_hash)
            except RPCTransportError as exc:
                logger.warning(
                    f"Receipt lookup {attempt}/{attempts} for {tx_hash} failed: {exc}",
                )
                receipt = None

            if receipt is not None:
                logger.info(
                    f"Transaction {tx_hash} mined in block {receipt.block_number} "
                    f"after {attempt} attempts",
                )
                return receipt

            if attempt == attempts:
                break
            if cancel_event is None:
                await asyncio.sleep(interval)
                continue
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
            raise TransactionCancelledError(tx_hash)

        raise TransactionTimeoutError(tx_hash, attempts)

    @log_execution(level="INFO")
    async def send_transaction(
        self,
        chain_id: str,
        transaction: TransactionRequest,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionReceipt:
        """Submit ``transaction`` and wait for its receipt."""
        tx_hash = await self.submit_transaction(chain_id, transaction)
        return await self.wait_for_transaction_receipt(
            chain_id, tx_hash, cancel_event=cancel_event,
        )

