import asyncio
from typing import Any, Dict, Optional

import aiohttp

from multichain.config import Settings
from multichain.exceptions import NetworkErrorType, RPCTransportError
from multichain.providers.base import BaseRPCProvider


class HTTPProvider(BaseRPCProvider):
    """JSON-RPC over HTTP(S) POST using a shared ``aiohttp.ClientSession``."""

    def __init__(
        self,
        rpc_url: str,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(rpc_url, settings)
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        # Created lazily so the session binds to the running event loop.
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": self.settings.user_agent,
                },
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """
        Asynchronously closes the session if this provider created it.

        Sessions passed in by the caller are left open for their owner.
        """
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def _send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        method = payload.get("method")
        try:
            async with self.session.post(
                self.rpc_url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.settings.rpc_timeout),
            ) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None

                # Some nodes pair JSON-RPC errors with a non-200 status.
                is_rpc_error = isinstance(data, dict) and "error" in data
                if response.status != 200 and not is_rpc_error:
                    raise RPCTransportError(
                        f"HTTP {response.status} from {self.rpc_url}",
                        method=method,
                        error_type=NetworkErrorType.RPC_ERROR,
                    )
                if not isinstance(data, dict):
                    raise RPCTransportError(
                        "Invalid JSON-RPC response body",
                        method=method,
                    )
                return data

        except asyncio.TimeoutError as exc:
            raise RPCTransportError(
                f"Request to {self.rpc_url} timed out",
                method=method,
                error_type=NetworkErrorType.CONNECTION_TIMEOUT,
            ) from exc
        except aiohttp.ClientConnectorDNSError as exc:
            raise RPCTransportError(
                str(exc), method=method, error_type=NetworkErrorType.DNS_ERROR,
            ) from exc
        except aiohttp.ClientSSLError as exc:
            raise RPCTransportError(
                str(exc), method=method, error_type=NetworkErrorType.SSL_ERROR,
            ) from exc
        except aiohttp.ClientConnectorError as exc:
            raise RPCTransportError(
                str(exc),
                method=method,
                error_type=NetworkErrorType.CONNECTION_REFUSED,
            ) from exc
        except aiohttp.ClientError as exc:
            raise RPCTransportError(
                str(exc) or exc.__class__.__name__,
                method=method,
                error_type=NetworkErrorType.NETWORK_UNREACHABLE,
            ) from exc
