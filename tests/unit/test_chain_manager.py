"""Tests for ChainManager: switching, catalog mutation, events, network errors."""

import asyncio

import pytest

from multichain.chain_manager import ChainManager
from multichain.events import EventName
from multichain.exceptions import (
    CannotRemoveActiveChainError,
    CannotRemoveDefaultChainError,
    ChainValidationError,
    ClientNotFoundError,
    DuplicateChainError,
    NetworkErrorType,
    RPCProtocolError,
    RPCTransportError,
    TransactionCancelledError,
    TransactionTimeoutError,
    UnhealthyChainError,
    UnsupportedChainError,
)
from multichain.models import ChainConfig, NativeCurrency
from tests.conftest import TX_HASH


@pytest.fixture()
async def manager(ethereum, polygon, network_manager, settings, clock):
    chain_manager = ChainManager(
        [ethereum, polygon],
        "0x1",
        network_manager=network_manager,
        settings=settings,
        clock=clock,
    )
    yield chain_manager
    await chain_manager.destroy()


@pytest.fixture()
def events(manager):
    received = []
    for name in EventName:
        manager.on(name, lambda event, name=name: received.append((name, event)))
    return received


@pytest.fixture()
def bsc():
    return ChainConfig(
        chain_id="0x38",
        chain_name="BNB Smart Chain",
        native_currency=NativeCurrency(name="BNB", symbol="BNB", decimals=18),
        rpc_urls=("https://bsc.example.org",),
    )


class TestConstruction:
    async def test_initial_state(self, manager):
        assert manager.current_chain_id == "0x1"
        assert manager.default_chain_id == "0x1"
        assert manager.get_current_chain_config().chain_name == "Ethereum Mainnet"
        assert [c.chain_id for c in manager.get_supported_chains()] == ["0x1", "0x89"]
        assert set(manager.network_manager.get_all_clients()) == {"0x1", "0x89"}

    async def test_builtin_catalog(self, network_manager, settings):
        chain_manager = ChainManager(network_manager=network_manager, settings=settings)
        assert chain_manager.current_chain_id == "0x1"
        for chain_id in ("0x1", "0x89", "0x38", "0xa4b1", "0xa"):
            assert chain_manager.is_chain_supported(chain_id)
        await chain_manager.destroy()

    async def test_default_must_be_in_catalog(self, polygon, network_manager, settings):
        with pytest.raises(UnsupportedChainError):
            ChainManager([polygon], "0x1", network_manager=network_manager, settings=settings)

    async def test_invalid_initial_chain(self, network_manager, settings, base_chain_dict):
        base_chain_dict["rpcUrls"] = []
        with pytest.raises(ChainValidationError):
            ChainManager([base_chain_dict], "0x2105", network_manager=network_manager, settings=settings)

    async def test_context_manager_destroys(self, ethereum, network_manager, settings, created_providers):
        async with ChainManager([ethereum], "0x1", network_manager=network_manager, settings=settings) as cm:
            assert cm.is_chain_supported("0x1")
        assert not cm.is_chain_supported("0x1")
        created_providers[0].close.assert_awaited()


class TestQueries:
    async def test_lookup_is_case_insensitive(self, manager):
        assert manager.is_chain_supported("0X89")
        assert manager.get_chain_config("0X89").chain_id == "0x89"
        assert manager.get_chain_config("0x38") is None

    async def test_supported_chains_is_a_copy(self, manager):
        manager.get_supported_chains().clear()
        assert len(manager.get_supported_chains()) == 2


class TestSwitchChain:
    async def test_switch_to_healthy_chain(self, manager, events, providers, clock):
        await manager.switch_chain("0x89")

        assert manager.current_chain_id == "0x89"
        assert len(events) == 1
        name, event = events[0]
        assert name is EventName.CHAIN_CHANGED
        assert event.previous_chain_id == "0x1"
        assert event.current_chain_id == "0x89"
        assert event.chain_config.chain_name == "Polygon Mainnet"
        assert event.timestamp == clock.now
        assert event.reason == "user"
        providers["https://polygon.example.org"].get_block_number.assert_awaited_once()

    async def test_unhealthy_target_leaves_state(self, manager, events, providers):
        providers["https://polygon.example.org"].get_block_number.side_effect = (
            RPCTransportError("connection refused")
        )

        with pytest.raises(UnhealthyChainError) as exc_info:
            await manager.switch_chain("0x89")

        assert exc_info.value.health.failure_count == 1
        assert manager.current_chain_id == "0x1"
        assert events == []

    async def test_same_chain_is_noop(self, manager, events, providers):
        await manager.switch_chain("0X1")
        assert events == []
        providers["https://eth.example.org"].get_block_number.assert_not_awaited()

    async def test_unsupported_chain(self, manager, events):
        with pytest.raises(UnsupportedChainError):
            await manager.switch_chain("0x38")
        assert manager.current_chain_id == "0x1"
        assert events == []

    async def test_reason_is_recorded(self, manager, events):
        await manager.switch_chain("0x89", reason="error_recovery")
        assert events[0][1].reason == "error_recovery"

    async def test_switch_caches_health(self, manager):
        await manager.switch_chain("0x89")
        assert manager.get_cached_network_health().is_healthy


class TestAddChain:
    async def test_add_and_remove_restores_catalog(self, manager, events, bsc):
        before = {c.chain_id for c in manager.get_supported_chains()}

        added = await manager.add_chain(bsc)
        assert manager.is_chain_supported("0x38")
        assert manager.network_manager.get_client("0x38") is not None

        await manager.remove_chain("0x38")
        assert {c.chain_id for c in manager.get_supported_chains()} == before
        assert manager.network_manager.get_client("0x38") is None

        assert [name for name, _ in events] == [
            EventName.CHAIN_ADDED,
            EventName.CHAIN_REMOVED,
        ]
        assert events[0][1].chain_config == added
        assert events[0][1].source == "user"
        assert events[1][1].chain_id == "0x38"
        assert events[1][1].chain_name == "BNB Smart Chain"

    async def test_add_sanitizes_mapping(self, manager, base_chain_dict):
        added = await manager.add_chain(base_chain_dict, source="config")
        assert added.chain_name == "Base"
        assert added.native_currency.symbol == "ETH"
        assert added.rpc_urls == ("https://base.example.org",)
        assert manager.get_chain_config("0x2105") == added

    async def test_invalid_decimals_rejected(self, manager, events, bsc, created_providers):
        invalid = bsc.model_copy(
            update={"native_currency": NativeCurrency(name="BNB", symbol="BNB", decimals=20)},
        )
        provider_count = len(created_providers)

        with pytest.raises(ChainValidationError) as exc_info:
            await manager.add_chain(invalid)

        assert any("decimals" in error for error in exc_info.value.errors)
        assert not manager.is_chain_supported("0x38")
        assert len(created_providers) == provider_count
        assert events == []

    async def test_malformed_mapping_rejected(self, manager, base_chain_dict):
        del base_chain_dict["nativeCurrency"]
        with pytest.raises(ChainValidationError):
            await manager.add_chain(base_chain_dict)
        assert not manager.is_chain_supported("0x2105")

    async def test_duplicate_rejected(self, manager, polygon, events):
        with pytest.raises(DuplicateChainError):
            await manager.add_chain(polygon)
        assert len(manager.get_supported_chains()) == 2
        assert events == []


class TestRemoveChain:
    async def test_cannot_remove_default(self, manager):
        with pytest.raises(CannotRemoveDefaultChainError):
            await manager.remove_chain("0x1")

    async def test_cannot_remove_default_while_inactive(self, manager):
        await manager.switch_chain("0x89")
        with pytest.raises(CannotRemoveDefaultChainError):
            await manager.remove_chain("0x1")
        assert manager.is_chain_supported("0x1")

    async def test_cannot_remove_active(self, manager, bsc):
        await manager.add_chain(bsc)
        await manager.switch_chain("0x38")
        with pytest.raises(CannotRemoveActiveChainError):
            await manager.remove_chain("0x38")
        assert manager.is_chain_supported("0x38")

    async def test_unknown_chain(self, manager, events):
        with pytest.raises(UnsupportedChainError):
            await manager.remove_chain("0x38")
        assert events == []

    async def test_removes_cached_health(self, manager):
        await manager.check_network_health("0x89")
        await manager.remove_chain("0x89")
        assert manager.get_cached_network_health("0x89") is None

    async def test_reason_is_recorded(self, manager, events):
        await manager.remove_chain("0x89", reason="maintenance")
        assert events[0][1].reason == "maintenance"


class TestNetworkOperations:
    async def test_defaults_to_active_chain(self, manager, providers):
        await manager.switch_chain("0x89")
        await manager.get_gas_price()
        providers["https://polygon.example.org"].get_gas_price.assert_awaited_once()
        providers["https://eth.example.org"].get_gas_price.assert_not_awaited()

    async def test_explicit_chain(self, manager, providers):
        balance = await manager.get_balance("0x" + "11" * 20, chain_id="0x89")
        assert balance == 10**18
        providers["https://polygon.example.org"].get_balance.assert_awaited_once_with(
            "0x" + "11" * 20, "latest",
        )

    async def test_block_number_and_estimate(self, manager):
        assert await manager.get_block_number() == 19_000_000
        assert await manager.estimate_gas({"to": "0xdef", "value": 1}) == 21_000

    async def test_receipt(self, manager):
        receipt = await manager.get_transaction_receipt(TX_HASH)
        assert receipt.gas_used == 21_000

    async def test_send_transaction(self, manager, events, providers):
        receipt = await manager.send_transaction({"to": "0xdef", "value": 10**18})
        assert receipt.status is True
        sent = providers["https://eth.example.org"].send_transaction.await_args.args[0]
        assert sent.to_rpc_params()["value"] == "0xde0b6b3a7640000"
        assert events == []

    async def test_send_timeout_emits_one_network_error(self, manager, events, providers):
        providers["https://eth.example.org"].get_transaction_receipt.return_value = None

        with pytest.raises(TransactionTimeoutError):
            await manager.send_transaction({"to": "0xdef"})

        assert len(events) == 1
        name, event = events[0]
        assert name is EventName.NETWORK_ERROR
        assert event.chain_id == "0x1"
        assert event.error_type is NetworkErrorType.TRANSACTION_TIMEOUT
        assert isinstance(event.error, TransactionTimeoutError)
        assert providers["https://eth.example.org"].get_transaction_receipt.await_count == 60

    async def test_rpc_error_emits_and_reraises(self, manager, events, providers):
        error = RPCProtocolError(-32000, "execution reverted")
        providers["https://eth.example.org"].estimate_gas.side_effect = error

        with pytest.raises(RPCProtocolError) as exc_info:
            await manager.estimate_gas({"to": "0xdef"})

        assert exc_info.value is error
        assert [name for name, _ in events] == [EventName.NETWORK_ERROR]
        assert events[0][1].error is error
        assert events[0][1].error_type is NetworkErrorType.RPC_ERROR

    async def test_unknown_chain_emits_client_not_found(self, manager, events):
        with pytest.raises(ClientNotFoundError):
            await manager.get_gas_price("0x38")
        assert events[0][1].error_type is NetworkErrorType.CLIENT_NOT_FOUND

    async def test_cancelled_wait_emits_nothing(self, manager, events, providers):
        providers["https://eth.example.org"].get_transaction_receipt.return_value = None
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(TransactionCancelledError):
            await manager.send_transaction({"to": "0xdef"}, cancel_event=cancel)
        assert events == []

    async def test_failing_listener_does_not_break_operation(self, manager, providers):
        def explode(event):
            raise RuntimeError("listener bug")

        manager.on(EventName.NETWORK_ERROR, explode)
        providers["https://eth.example.org"].get_gas_price.side_effect = RPCTransportError("down")

        with pytest.raises(RPCTransportError):
            await manager.get_gas_price()


class TestHealth:
    async def test_check_defaults_to_active_chain(self, manager, clock):
        health = await manager.check_network_health()
        assert health.is_healthy
        assert manager.get_cached_network_health() == health

        clock.advance(300_001)
        assert manager.get_cached_network_health() is None

    async def test_check_unknown_chain(self, manager):
        health = await manager.check_network_health("0x38")
        assert not health.is_healthy
        assert health.error == "Client not found"


class TestSubscriptions:
    async def test_once_and_off(self, manager):
        changed = []
        ignored = []
        manager.once(EventName.CHAIN_CHANGED, changed.append)
        manager.on(EventName.CHAIN_CHANGED, ignored.append)
        manager.off(EventName.CHAIN_CHANGED, ignored.append)

        await manager.switch_chain("0x89")
        await manager.switch_chain("0x1")

        assert [event.current_chain_id for event in changed] == ["0x89"]
        assert ignored == []

    async def test_destroy_clears_everything(self, manager, events, created_providers):
        await manager.check_network_health("0x1")
        await manager.destroy()

        assert manager.get_supported_chains() == []
        assert manager.network_manager.get_all_clients() == {}
        assert manager.get_cached_network_health("0x1") is None
        assert manager.events.listener_count(EventName.CHAIN_CHANGED) == 0
        for provider in created_providers:
            provider.close.assert_awaited()
