import asyncio
from typing import Any, Awaitable, Iterable, List, Literal, Mapping, Optional, TypeVar, Union

from loguru import logger
from pydantic import ValidationError

from multichain.chains import SUPPORTED_CHAINS
from multichain.config import Settings, settings as default_settings
from multichain.events import (
    ChainAddedEvent,
    ChainChangedEvent,
    ChainRemovedEvent,
    EventBus,
    EventKey,
    EventName,
    Handler,
    NetworkErrorEvent,
    Subscription,
)
from multichain.exceptions import (
    CannotRemoveActiveChainError,
    CannotRemoveDefaultChainError,
    ChainValidationError,
    DuplicateChainError,
    NetworkErrorType,
    TransactionCancelledError,
    UnhealthyChainError,
    UnsupportedChainError,
)
from multichain.models import (
    ChainConfig,
    NetworkHealth,
    TransactionReceipt,
    TransactionRequest,
)
from multichain.network_manager import NetworkClientManager
from multichain.registry import ChainRegistry
from multichain.utils.timing import Clock, now_ms
from multichain.validator import (
    normalize_chain_id,
    sanitize_chain_config,
    validate_chain_config,
)

T = TypeVar("T")
ChainInput = Union[ChainConfig, Mapping[str, Any]]
TransactionInput = Union[TransactionRequest, Mapping[str, Any]]


class ChainManager:
    """
    Single entry point for working with several chains.

    ChainManager keeps the registry of supported chains and the id of the
    currently active one, delegates every network operation to a
    :class:`NetworkClientManager`, and publishes state changes on an
    :class:`EventBus`.

    Methods:
        switch_chain(chain_id) -> None:
            Health-gated switch of the active chain; emits ``chainChanged``.
        add_chain(config) -> ChainConfig:
            Validates, sanitizes and registers a chain; emits ``chainAdded``.
        remove_chain(chain_id) -> None:
            Unregisters a chain that is neither default nor active; emits
            ``chainRemoved``.
        check_network_health(chain_id=None) -> NetworkHealth:
            Probes a chain, the active one by default.
        get_balance / get_gas_price / estimate_gas / send_transaction /
        get_transaction_receipt / get_block_number:
            Network operations against the given or active chain. Failures
            emit ``networkError`` and are re-raised.
        destroy() -> None:
            Drops listeners, clients, health data and the registry.
    """

    def __init__(
        self,
        chains: Optional[Iterable[ChainInput]] = None,
        default_chain_id: Optional[str] = None,
        *,
        event_bus: Optional[EventBus] = None,
        network_manager: Optional[NetworkClientManager] = None,
        settings: Optional[Settings] = None,
        clock: Clock = now_ms,
    ) -> None:
        """
        Initializes the ChainManager instance.

        Args:
            chains (Optional[Iterable[ChainInput]]): Initial chain catalog; the
                built-in catalog when omitted.
            default_chain_id (Optional[str]): Default and initially active chain;
                ``settings.default_chain_id`` when omitted.
            event_bus (Optional[EventBus]): Bus to publish on.
            network_manager (Optional[NetworkClientManager]): Client manager to use.
            settings (Optional[Settings]): Runtime settings.
            clock (Clock): Epoch-millisecond clock used for event timestamps.

        Raises:
            ChainValidationError: If an initial chain configuration is invalid.
            DuplicateChainError: If the catalog lists a chain twice.
            UnsupportedChainError: If the default chain is not in the catalog.
        """
        self.settings = settings or default_settings
        self._clock = clock
        self.events = event_bus or EventBus()
        self.network_manager = network_manager or NetworkClientManager(
            self.settings, clock=clock,
        )
        self.registry = ChainRegistry()
        self.lock = asyncio.Lock()
        self._switch_lock = asyncio.Lock()

        initial = SUPPORTED_CHAINS.values() if chains is None else chains
        for chain in initial:
            config = self._prepare(chain)
            self.registry.add(config)
            self.network_manager.create_client(config)

        self._default_chain_id = normalize_chain_id(
            default_chain_id or self.settings.default_chain_id,
        )
        if self._default_chain_id not in self.registry:
            raise UnsupportedChainError(self._default_chain_id)
        self._current_chain_id = self._default_chain_id

        logger.info(
            f"Chain manager initialized with {len(self.registry)} chains, "
            f"active chain {self._current_chain_id}",
        )

    async def __aenter__(self) -> "ChainManager":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.destroy()

    @staticmethod
    def _prepare(chain: ChainInput) -> ChainConfig:
        if isinstance(chain, ChainConfig):
            config = chain
        else:
            try:
                config = ChainConfig.model_validate(chain)
            except ValidationError as exc:
                raise ChainValidationError(
                    [
                        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                        for error in exc.errors()
                    ],
                ) from exc

        result = validate_chain_config(config)
        if not result.is_valid:
            raise ChainValidationError(result.errors)
        return sanitize_chain_config(config)

    @property
    def current_chain_id(self) -> str:
        return self._current_chain_id

    @property
    def default_chain_id(self) -> str:
        return self._default_chain_id

    def get_current_chain_config(self) -> Optional[ChainConfig]:
        return self.registry.get(self._current_chain_id)

    def get_supported_chains(self) -> List[ChainConfig]:
        return list(self.registry)

    def get_chain_config(self, chain_id: str) -> Optional[ChainConfig]:
        return self.registry.get(chain_id)

    def is_chain_supported(self, chain_id: str) -> bool:
        return chain_id in self.registry

    def _target(self, chain_id: Optional[str]) -> str:
        return self._current_chain_id if chain_id is None else normalize_chain_id(chain_id)

    async def switch_chain(
        self,
        chain_id: str,
        *,
        reason: Literal["user", "auto", "error_recovery"] = "user",
    ) -> None:
        """
        Make ``chain_id`` the active chain.

        The target's health is probed before anything changes; on any
        rejection the active chain is left untouched and no event fires.

        Raises:
            UnsupportedChainError: If the chain is not registered.
            UnhealthyChainError: If the target failed its health check.
        """
        target = normalize_chain_id(chain_id)
        async with self._switch_lock:
            if target not in self.registry:
                raise UnsupportedChainError(chain_id)
            if target == self._current_chain_id:
                return

            health = await self.network_manager.check_network_health(target)
            if not health.is_healthy:
                raise UnhealthyChainError(target, health)

            config = self.registry.get(target)
            if config is None:
                # Removed while the health probe was in flight.
                raise UnsupportedChainError(chain_id)

            previous = self._current_chain_id
            self._current_chain_id = target
            logger.info(f"Switched active chain from {previous} to {target}")
            self.events.emit(
                EventName.CHAIN_CHANGED,
                ChainChangedEvent(
                    previous_chain_id=previous,
                    current_chain_id=target,
                    chain_config=config,
                    timestamp=self._clock(),
                    reason=reason,
                ),
            )

    async def add_chain(
        self,
        config: ChainInput,
        *,
        source: Literal["user", "auto", "config"] = "user",
    ) -> ChainConfig:
        """
        Register a new chain and create its network client.

        Args:
            config (ChainInput): A ChainConfig or a mapping with the same fields.
            source: Recorded on the ``chainAdded`` event.

        Returns:
            ChainConfig: The sanitized configuration that was registered.

        Raises:
            ChainValidationError: If the configuration is invalid.
            DuplicateChainError: If the chain is already registered.
        """
        sanitized = self._prepare(config)
        async with self.lock:
            if sanitized.chain_id in self.registry:
                raise DuplicateChainError(sanitized.chain_id)
            self.registry.add(sanitized)
            self.network_manager.create_client(sanitized)

        logger.info(f"Added chain {sanitized.chain_id} ({sanitized.chain_name})")
        self.events.emit(
            EventName.CHAIN_ADDED,
            ChainAddedEvent(
                chain_config=sanitized,
                timestamp=self._clock(),
                source=source,
            ),
        )
        return sanitized

    async def remove_chain(
        self,
        chain_id: str,
        *,
        reason: Literal["user", "auto", "maintenance"] = "user",
    ) -> None:
        """
        Unregister a chain and drop its network client.

        Raises:
            CannotRemoveDefaultChainError: If it is the default chain.
            CannotRemoveActiveChainError: If it is the active chain.
            UnsupportedChainError: If it is not registered.
        """
        target = normalize_chain_id(chain_id)
        async with self.lock:
            if target == self._default_chain_id:
                raise CannotRemoveDefaultChainError(target)
            if target == self._current_chain_id:
                raise CannotRemoveActiveChainError(target)
            config = self.registry.remove(target)

        await self.network_manager.remove_client(target)
        logger.info(f"Removed chain {target} ({config.chain_name})")
        self.events.emit(
            EventName.CHAIN_REMOVED,
            ChainRemovedEvent(
                chain_id=target,
                chain_name=config.chain_name,
                timestamp=self._clock(),
                reason=reason,
            ),
        )

    async def check_network_health(self, chain_id: Optional[str] = None) -> NetworkHealth:
        return await self.network_manager.check_network_health(self._target(chain_id))

    def get_cached_network_health(self, chain_id: Optional[str] = None) -> Optional[NetworkHealth]:
        return self.network_manager.get_cached_health(self._target(chain_id))

    def _emit_network_error(self, chain_id: str, error: Exception) -> None:
        self.events.emit(
            EventName.NETWORK_ERROR,
            NetworkErrorEvent(
                chain_id=chain_id,
                error=error,
                error_type=getattr(error, "error_type", NetworkErrorType.UNKNOWN),
                timestamp=self._clock(),
            ),
        )

    async def _run(self, chain_id: str, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except TransactionCancelledError:
            raise
        except Exception as exc:
            logger.error(f"Network operation on chain {chain_id} failed: {exc}")
            self._emit_network_error(chain_id, exc)
            raise

    async def get_block_number(self, chain_id: Optional[str] = None) -> int:
        target = self._target(chain_id)
        return await self._run(target, self.network_manager.get_block_number(target))

    async def get_balance(
        self,
        address: str,
        chain_id: Optional[str] = None,
        block: str = "latest",
    ) -> int:
        target = self._target(chain_id)
        return await self._run(
            target, self.network_manager.get_balance(target, address, block),
        )

    async def get_gas_price(self, chain_id: Optional[str] = None) -> int:
        target = self._target(chain_id)
        return await self._run(target, self.network_manager.get_gas_price(target))

    async def estimate_gas(
        self,
        transaction: TransactionInput,
        chain_id: Optional[str] = None,
    ) -> int:
        target = self._target(chain_id)
        request = TransactionRequest.model_validate(transaction)
        return await self._run(target, self.network_manager.estimate_gas(target, request))

    async def send_transaction(
        self,
        transaction: TransactionInput,
        chain_id: Optional[str] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionReceipt:
        """
        Submit a transaction and wait for its receipt.

        Setting ``cancel_event`` stops waiting with
        :class:`TransactionCancelledError`; the submitted transaction itself
        is not affected.
        """
        target = self._target(chain_id)
        request = TransactionRequest.model_validate(transaction)
        return await self._run(
            target,
            self.network_manager.send_transaction(
                target, request, cancel_event=cancel_event,
            ),
        )

    async def get_transaction_receipt(
        self,
        tx_hash: str,
        chain_id: Optional[str] = None,
    ) -> Optional[TransactionReceipt]:
        target = self._target(chain_id)
        return await self._run(
            target, self.network_manager.get_transaction_receipt(target, tx_hash),
        )

    def on(self, event: EventKey, handler: Handler) -> Subscription:
        return self.events.on(event, handler)

    def off(self, event: EventKey, handler: Handler) -> None:
        self.events.off(event, handler)

    def once(self, event: EventKey, handler: Handler) -> Subscription:
        return self.events.once(event, handler)

    async def destroy(self) -> None:
        """Release listeners, clients, health data and the registry."""
        self.events.remove_all_listeners()
        await self.network_manager.clear_all()
        self.registry.clear()
        logger.info("Chain manager destroyed")
