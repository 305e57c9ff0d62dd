import asyncio
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger

from multichain.config import Settings
from multichain.exceptions import NetworkErrorType, RPCTransportError
from multichain.providers.base import BaseRPCProvider


class WebSocketProvider(BaseRPCProvider):
    """
    JSON-RPC over a persistent WebSocket connection.

    One connection is opened lazily and shared by all calls. A background
    reader task matches responses to pending requests by id, so concurrent
    calls on the same endpoint do not wait on each other.
    """

    def __init__(
        self,
        rpc_url: str,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat: float = 30.0,
    ) -> None:
        super().__init__(rpc_url, settings)
        self._session = session
        self._owns_session = session is None
        self._heartbeat = heartbeat
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._connect_lock = asyncio.Lock()

    async def _connect(self) -> aiohttp.ClientWebSocketResponse:
        async with self._connect_lock:
            if self._ws is not None and not self._ws.closed:
                return self._ws

            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    headers={"User-Agent": self.settings.user_agent},
                )
                self._owns_session = True

            try:
                self._ws = await asyncio.wait_for(
                    self._session.ws_connect(self.rpc_url, heartbeat=self._heartbeat),
                    timeout=self.settings.rpc_timeout,
                )
            except asyncio.TimeoutError as exc:
                raise RPCTransportError(
                    f"Connecting to {self.rpc_url} timed out",
                    error_type=NetworkErrorType.CONNECTION_TIMEOUT,
                ) from exc
            except aiohttp.ClientConnectorError as exc:
                raise RPCTransportError(
                    str(exc), error_type=NetworkErrorType.CONNECTION_REFUSED,
                ) from exc
            except aiohttp.ClientError as exc:
                raise RPCTransportError(
                    str(exc) or exc.__class__.__name__,
                    error_type=NetworkErrorType.NETWORK_UNREACHABLE,
                ) from exc

            logger.info(f"WebSocket connected to {self.rpc_url}")
            self._reader = asyncio.create_task(self._read_loop(self._ws))
            return self._ws

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    try:
                        data = message.json()
                    except ValueError:
                        logger.warning(f"Discarding non-JSON frame from {self.rpc_url}")
                        continue
                    if not isinstance(data, dict):
                        continue
                    future = self._pending.pop(data.get("id"), None)
                    if future is not None and not future.done():
                        future.set_result(data)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    logger.warning(f"WebSocket error on {self.rpc_url}: {ws.exception()}")
                    break
        finally:
            # A reconnect may already own the pending map.
            if self._ws is ws:
                self._fail_pending("WebSocket connection closed")

    def _fail_pending(self, reason: str) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(
                    RPCTransportError(
                        reason, error_type=NetworkErrorType.NETWORK_UNREACHABLE,
                    ),
                )

    async def _send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        method = payload.get("method")
        ws = await self._connect()
        future = asyncio.get_running_loop().create_future()
        self._pending[payload["id"]] = future
        try:
            await ws.send_json(payload)
            return await asyncio.wait_for(future, timeout=self.settings.rpc_timeout)
        except asyncio.TimeoutError as exc:
            raise RPCTransportError(
                f"Request to {self.rpc_url} timed out",
                method=method,
                error_type=NetworkErrorType.CONNECTION_TIMEOUT,
            ) from exc
        except (aiohttp.ClientError, ConnectionResetError) as exc:
            raise RPCTransportError(
                str(exc) or exc.__class__.__name__,
                method=method,
                error_type=NetworkErrorType.NETWORK_UNREACHABLE,
            ) from exc
        finally:
            self._pending.pop(payload["id"], None)

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None
