from typing import Optional

from yarl import URL

from multichain.config import Settings
from multichain.providers.base import BaseRPCProvider
from multichain.providers.http import HTTPProvider
from multichain.providers.websocket import WebSocketProvider

__all__ = [
    "BaseRPCProvider",
    "HTTPProvider",
    "WebSocketProvider",
    "create_provider",
]


def create_provider(rpc_url: str, settings: Optional[Settings] = None) -> BaseRPCProvider:
    """Pick the provider implementation matching the URL scheme."""
    scheme = URL(rpc_url).scheme.lower()
    if scheme in ("ws", "wss"):
        return WebSocketProvider(rpc_url, settings)
    if scheme in ("http", "https"):
        return HTTPProvider(rpc_url, settings)
    raise ValueError(f"Unsupported RPC URL scheme: {rpc_url}")
