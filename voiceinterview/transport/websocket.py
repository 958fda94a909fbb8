"""aiohttp WebSocket transport to the voice agent."""

import logging
from typing import Any, Dict, Optional

import aiohttp

from .base import AbstractTransport, TransportFrame

logger = logging.getLogger(__name__)


class AiohttpWebSocketTransport(AbstractTransport):
    """Duplex transport over ``aiohttp.ClientSession.ws_connect``."""

    def __init__(self, heartbeat: Optional[float] = 30.0):
        self.heartbeat = heartbeat
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._closed = True

    async def open(self, url: str, headers: Optional[Dict[str, str]] = None) -> None:
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(url, headers=headers or {}, heartbeat=self.heartbeat)
        except BaseException:
            await self._session.close()
            self._session = None
            raise
        self._closed = False
        logger.info(f"WebSocket connected: {url.split('?')[0]}")

    async def send_json(self, message: Dict[str, Any]) -> None:
        if self._ws is None or self._closed:
            raise ConnectionError("WebSocket connection is not open")
        await self._ws.send_json(message)

    async def send_bytes(self, data: bytes) -> None:
        if self._ws is None or self._closed:
            raise ConnectionError("WebSocket connection is not open")
        await self._ws.send_bytes(data)

    async def receive(self) -> TransportFrame:
        if self._ws is None or self._closed:
            return TransportFrame(kind="closed")

        msg = await self._ws.receive()
        if msg.type == aiohttp.WSMsgType.TEXT:
            return TransportFrame(kind="text", data=msg.data)
        if msg.type == aiohttp.WSMsgType.BINARY:
            return TransportFrame(kind="binary", data=msg.data)
        if msg.type == aiohttp.WSMsgType.ERROR:
            self._closed = True
            return TransportFrame(kind="error", error=self._ws.exception())

        # CLOSE, CLOSING, CLOSED
        self._closed = True
        close_code = msg.data if msg.type == aiohttp.WSMsgType.CLOSE else self._ws.close_code
        return TransportFrame(kind="closed", close_code=close_code)

    async def close(self) -> None:
        self._closed = True
        try:
            if self._ws is not None and not self._ws.closed:
                await self._ws.close()
        finally:
            self._ws = None
            if self._session is not None:
                await self._session.close()
                self._session = None
        logger.debug("WebSocket transport closed")

    @property
    def closed(self) -> bool:
        return self._closed
