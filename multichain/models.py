# multichain/models.py
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from multichain.utils.custom_types import HexInt, HexQuantity


class CamelModel(BaseModel):
    """Base model accepting both camelCase wire names and snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NativeCurrency(CamelModel):
    """
    Native currency of a chain.

    Attributes:
        name (str): Human readable currency name, e.g. "Ether".
        symbol (str): Ticker symbol, e.g. "ETH".
        decimals (int): Number of decimals of the smallest unit.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    symbol: str
    decimals: int


class ChainConfig(CamelModel):
    """
    Configuration model for a blockchain network.

    Attributes:
        chain_id (str): Hex chain identifier, e.g. "0x1".
        chain_name (str): Display name of the chain.
        native_currency (NativeCurrency): The chain's native currency.
        rpc_urls (Tuple[str, ...]): Ordered RPC endpoints; the first one is bound.
        block_explorer_urls (Optional[Tuple[str, ...]]): Block explorer base URLs.
        icon_urls (Optional[Tuple[str, ...]]): Icon URLs.
    """

    model_config = ConfigDict(frozen=True)

    chain_id: str
    chain_name: str
    native_currency: NativeCurrency
    rpc_urls: Tuple[str, ...]
    block_explorer_urls: Optional[Tuple[str, ...]] = None
    icon_urls: Optional[Tuple[str, ...]] = None


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)


class NetworkHealth(CamelModel):
    """
    Result of a single health probe against a chain's bound endpoint.

    ``latency`` and ``block_number`` are only set when healthy, ``error`` only
    when unhealthy. ``failure_count`` counts consecutive failed probes.
    """

    model_config = ConfigDict(frozen=True)

    is_healthy: bool
    last_checked: int  # Epoch milliseconds
    latency: Optional[int] = None  # Milliseconds
    block_number: Optional[int] = None
    error: Optional[str] = None
    failure_count: int = 0
    rpc_url: Optional[str] = None


class AccessListEntry(CamelModel):
    address: str
    storage_keys: List[str] = Field(default_factory=list)


class TransactionRequest(CamelModel):
    """
    Transaction parameters passed to ``eth_estimateGas``/``eth_sendTransaction``.

    Either the legacy ``gas_price`` or the EIP-1559 fee fields may be set.
    Integer fields serialize as 0x-prefixed quantities.
    """

    to: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")
    value: Optional[HexQuantity] = None
    data: Optional[str] = None
    gas: Optional[HexQuantity] = None
    gas_price: Optional[HexQuantity] = None
    nonce: Optional[HexQuantity] = None
    max_fee_per_gas: Optional[HexQuantity] = None
    max_priority_fee_per_gas: Optional[HexQuantity] = None
    type: Optional[HexQuantity] = None
    access_list: Optional[List[AccessListEntry]] = None
    chain_id: Optional[HexQuantity] = None

    def to_rpc_params(self) -> Dict[str, Any]:
        """Dump the request as a JSON-RPC transaction object."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TransactionReceipt(CamelModel):
    """
    Receipt of a mined transaction.

    Quantities arrive as hex strings from the endpoint and are stored as ints.
    Fields beyond hash/block/gas/status are populated when the endpoint returns
    them.
    """

    transaction_hash: str
    block_number: HexInt
    gas_used: HexInt
    status: bool = False
    block_hash: Optional[str] = None
    transaction_index: Optional[HexInt] = None
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    contract_address: Optional[str] = None
    cumulative_gas_used: Optional[HexInt] = None
    effective_gas_price: Optional[HexInt] = None
    logs: List[Dict[str, Any]] = Field(default_factory=list)
    logs_bloom: Optional[str] = None
    type: Optional[HexInt] = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.lower() in ("0x1", "1", "true")
        if value is None:
            return False
        return bool(value)
