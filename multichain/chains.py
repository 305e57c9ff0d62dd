"""Built-in catalog of EVM chains registered when no catalog is supplied."""

from typing import Dict

from multichain.models import ChainConfig, NativeCurrency

_TRUSTWALLET_ASSETS = "https://raw.githubusercontent.com/trustwallet/assets/master/blockchains"

ETHEREUM_MAINNET = ChainConfig(
    chain_id="0x1",
    chain_name="Ethereum Mainnet",
    native_currency=NativeCurrency(name="Ether", symbol="ETH", decimals=18),
    rpc_urls=(
        "https://eth-mainnet.public.blastapi.io",
        "https://rpc.ankr.com/eth",
    ),
    block_explorer_urls=("https://etherscan.io",),
    icon_urls=(f"{_TRUSTWALLET_ASSETS}/ethereum/info/logo.png",),
)

POLYGON_MAINNET = ChainConfig(
    chain_id="0x89",
    chain_name="Polygon Mainnet",
    native_currency=NativeCurrency(name="MATIC", symbol="MATIC", decimals=18),
    rpc_urls=(
        "https://polygon-rpc.com/",
        "https://rpc.ankr.com/polygon",
        "https://polygon-mainnet.public.blastapi.io",
    ),
    block_explorer_urls=("https://polygonscan.com",),
    icon_urls=(f"{_TRUSTWALLET_ASSETS}/polygon/info/logo.png",),
)

BSC_MAINNET = ChainConfig(
    chain_id="0x38",
    chain_name="BNB Smart Chain",
    native_currency=NativeCurrency(name="BNB", symbol="BNB", decimals=18),
    rpc_urls=(
        "https://bsc-dataseed.binance.org/",
        "https://rpc.ankr.com/bsc",
        "https://bsc-mainnet.public.blastapi.io",
    ),
    block_explorer_urls=("https://bscscan.com",),
    icon_urls=(f"{_TRUSTWALLET_ASSETS}/smartchain/info/logo.png",),
)

ARBITRUM_ONE = ChainConfig(
    chain_id="0xa4b1",
    chain_name="Arbitrum One",
    native_currency=NativeCurrency(name="Ether", symbol="ETH", decimals=18),
    rpc_urls=(
        "https://arb1.arbitrum.io/rpc",
        "https://rpc.ankr.com/arbitrum",
    ),
    block_explorer_urls=("https://arbiscan.io",),
    icon_urls=(f"{_TRUSTWALLET_ASSETS}/arbitrum/info/logo.png",),
)

OPTIMISM_MAINNET = ChainConfig(
    chain_id="0xa",
    chain_name="Optimism",
    native_currency=NativeCurrency(name="Ether", symbol="ETH", decimals=18),
    rpc_urls=(
        "https://mainnet.optimism.io",
        "https://rpc.ankr.com/optimism",
    ),
    block_explorer_urls=("https://optimistic.etherscan.io",),
    icon_urls=(f"{_TRUSTWALLET_ASSETS}/optimism/info/logo.png",),
)

SUPPORTED_CHAINS: Dict[str, ChainConfig] = {
    chain.chain_id: chain
    for chain in (
        ETHEREUM_MAINNET,
        POLYGON_MAINNET,
        BSC_MAINNET,
        ARBITRUM_ONE,
        OPTIMISM_MAINNET,
    )
}

DEFAULT_CHAIN_ID = ETHEREUM_MAINNET.chain_id
