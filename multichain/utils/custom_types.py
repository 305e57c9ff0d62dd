from typing import Annotated, Any

from eth_utils import is_hex, to_hex
from pydantic import BeforeValidator, PlainSerializer


def _parse_hex_int(value: Any) -> Any:
    if isinstance(value, str) and value[:2].lower() == "0x" and len(value) > 2:
        if is_hex(value):
            return int(value, 16)
    return value


HexInt = Annotated[
    int,
    BeforeValidator(_parse_hex_int),
]

# Integer accepted as int, decimal string or 0x-hex; emitted as a JSON-RPC quantity.
HexQuantity = Annotated[
    int,
    BeforeValidator(_parse_hex_int),
    PlainSerializer(lambda x: to_hex(x), return_type=str, when_used="json"),
]
