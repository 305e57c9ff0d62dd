from typing import Dict, List
from unittest.mock import AsyncMock

import pytest
from loguru import logger

from multichain.config import Settings
from multichain.models import ChainConfig, NativeCurrency
from multichain.network_manager import NetworkClientManager

TX_HASH = "0x" + "ab" * 32

RAW_RECEIPT = {
    "transactionHash": TX_HASH,
    "blockNumber": "0x10",
    "blockHash": "0x" + "cd" * 32,
    "transactionIndex": "0x0",
    "from": "0x" + "11" * 20,
    "to": "0x" + "22" * 20,
    "gasUsed": "0x5208",
    "cumulativeGasUsed": "0x5208",
    "effectiveGasPrice": "0x3b9aca00",
    "status": "0x1",
    "logs": [],
    "type": "0x2",
}


class FakeProvider:
    """Stand-in for an RPC provider with one AsyncMock per operation."""

    def __init__(self, rpc_url: str, settings: Settings = None) -> None:
        self.rpc_url = rpc_url
        self.in_flight = 0
        self.get_block_number = AsyncMock(return_value=19_000_000)
        self.get_balance = AsyncMock(return_value=10**18)
        self.get_gas_price = AsyncMock(return_value=30 * 10**9)
        self.estimate_gas = AsyncMock(return_value=21_000)
        self.send_transaction = AsyncMock(return_value=TX_HASH)
        self.get_transaction_receipt = AsyncMock(return_value=dict(RAW_RECEIPT))
        self.close = AsyncMock()


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        receipt_poll_interval=0,
        health_check_timeout=1.0,
        rpc_backoff_factor=0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def providers() -> Dict[str, FakeProvider]:
    """Latest FakeProvider created per RPC URL."""
    return {}


@pytest.fixture()
def created_providers() -> List[FakeProvider]:
    return []


@pytest.fixture()
def provider_factory(providers, created_providers):
    def factory(rpc_url: str, settings: Settings) -> FakeProvider:
        provider = FakeProvider(rpc_url, settings)
        providers[rpc_url] = provider
        created_providers.append(provider)
        return provider

    return factory


@pytest.fixture()
def network_manager(settings, provider_factory, clock) -> NetworkClientManager:
    return NetworkClientManager(settings, provider_factory=provider_factory, clock=clock)


@pytest.fixture()
def ethereum() -> ChainConfig:
    return ChainConfig(
        chain_id="0x1",
        chain_name="Ethereum Mainnet",
        native_currency=NativeCurrency(name="Ether", symbol="ETH", decimals=18),
        rpc_urls=("https://eth.example.org", "https://eth-backup.example.org"),
        block_explorer_urls=("https://etherscan.io",),
    )


@pytest.fixture()
def polygon() -> ChainConfig:
    return ChainConfig(
        chain_id="0x89",
        chain_name="Polygon Mainnet",
        native_currency=NativeCurrency(name="MATIC", symbol="MATIC", decimals=18),
        rpc_urls=("https://polygon.example.org",),
    )


@pytest.fixture()
def base_chain_dict() -> dict:
    return {
        "chainId": "0x2105",
        "chainName": " Base ",
        "nativeCurrency": {"name": "Ether", "symbol": "eth", "decimals": 18},
        "rpcUrls": [" https://base.example.org "],
        "blockExplorerUrls": ["https://basescan.org"],
    }


@pytest.fixture()
def log_messages():
    messages: List[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="DEBUG")
    yield messages
    logger.remove(handler_id)
