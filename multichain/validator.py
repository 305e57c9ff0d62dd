"""
Validation and normalization of chain configurations.

Every function here is pure: inputs are never mutated and no state is kept.
A configuration is checked with :func:`validate_chain_config` and then
canonicalized with :func:`sanitize_chain_config` before it is registered.
"""

import re
from typing import Iterable, List, Optional, Union

from yarl import URL

from multichain.models import ChainConfig, NativeCurrency, ValidationResult

CHAIN_ID_PATTERN = re.compile(r"^0x[a-fA-F0-9]+$")
RPC_URL_SCHEMES = frozenset({"http", "https", "ws", "wss"})
WEB_URL_SCHEMES = frozenset({"http", "https"})
MAX_DECIMALS = 18


def is_valid_chain_id(chain_id: str) -> bool:
    return (
        isinstance(chain_id, str)
        and len(chain_id) > 2
        and CHAIN_ID_PATTERN.match(chain_id) is not None
    )


def _has_scheme(url: str, schemes: frozenset) -> bool:
    if not isinstance(url, str) or not url.strip():
        return False
    try:
        parsed = URL(url.strip())
    except (TypeError, ValueError):
        return False
    return parsed.scheme.lower() in schemes and bool(parsed.host)


def is_valid_rpc_url(url: str) -> bool:
    return _has_scheme(url, RPC_URL_SCHEMES)


def is_valid_explorer_url(url: str) -> bool:
    return _has_scheme(url, WEB_URL_SCHEMES)


def is_valid_icon_url(url: str) -> bool:
    return _has_scheme(url, WEB_URL_SCHEMES)


def validate_native_currency(currency: NativeCurrency) -> List[str]:
    """Return the list of problems with a native currency definition."""
    errors = []

    if not currency.name or not currency.name.strip():
        errors.append("Native currency name is required")

    if not currency.symbol or not currency.symbol.strip():
        errors.append("Native currency symbol is required")

    if not 0 <= currency.decimals <= MAX_DECIMALS:
        errors.append(
            f"Native currency decimals must be between 0 and {MAX_DECIMALS}",
        )

    return errors


def validate_chain_config(config: ChainConfig) -> ValidationResult:
    """
    Check a chain configuration and collect every problem found.

    Args:
        config (ChainConfig): The configuration to check.

    Returns:
        ValidationResult: ``is_valid`` plus one message per failed check.
    """
    errors = []

    if not config.chain_id:
        errors.append("Chain ID is required")
    elif not is_valid_chain_id(config.chain_id):
        errors.append("Invalid chain ID format (must be hex string starting with 0x)")

    if not config.chain_name or not config.chain_name.strip():
        errors.append("Chain name is required")

    if not config.rpc_urls:
        errors.append("At least one RPC URL is required")
    else:
        for index, url in enumerate(config.rpc_urls):
            if not is_valid_rpc_url(url):
                errors.append(f"Invalid RPC URL at index {index}: {url}")

    errors.extend(validate_native_currency(config.native_currency))

    for index, url in enumerate(config.block_explorer_urls or ()):
        if not is_valid_explorer_url(url):
            errors.append(f"Invalid block explorer URL at index {index}: {url}")

    for index, url in enumerate(config.icon_urls or ()):
        if not is_valid_icon_url(url):
            errors.append(f"Invalid icon URL at index {index}: {url}")

    return ValidationResult(is_valid=not errors, errors=errors)


def normalize_chain_id(chain_id: Union[str, int]) -> str:
    """Canonical registry key for a chain id: trimmed lower-case hex."""
    if isinstance(chain_id, int):
        return decimal_to_hex_chain_id(chain_id)
    return chain_id.strip().lower()


def decimal_to_hex_chain_id(decimal: int) -> str:
    return hex(decimal)


def hex_to_decimal_chain_id(chain_id: str) -> int:
    return int(chain_id, 16)


def is_same_chain(first: ChainConfig, second: ChainConfig) -> bool:
    return normalize_chain_id(first.chain_id) == normalize_chain_id(second.chain_id)


def _trim_all(urls: Optional[Iterable[str]]) -> Optional[tuple]:
    if urls is None:
        return None
    return tuple(url.strip() for url in urls)


def sanitize_chain_config(config: ChainConfig) -> ChainConfig:
    """
    Return a canonical copy of ``config``.

    The chain id is normalized, names are trimmed, the currency symbol is
    upper-cased and every URL is trimmed. Sanitizing is idempotent.
    """
    currency = config.native_currency
    return config.model_copy(
        update={
            "chain_id": normalize_chain_id(config.chain_id),
            "chain_name": config.chain_name.strip(),
            "native_currency": currency.model_copy(
                update={
                    "name": currency.name.strip(),
                    "symbol": currency.symbol.strip().upper(),
                },
            ),
            "rpc_urls": _trim_all(config.rpc_urls),
            "block_explorer_urls": _trim_all(config.block_explorer_urls),
            "icon_urls": _trim_all(config.icon_urls),
        },
    )
