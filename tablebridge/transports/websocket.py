"""WebSocket client transport for TableBridge.

The agent leg is an outbound WebSocket to the speech-to-speech endpoint,
opened with the ``websockets`` library's asyncio client.
"""

from __future__ import annotations

from typing import Any

import websockets.asyncio.client
from loguru import logger
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from tablebridge.transports.base import BaseTransport, TransportClosed


class WebSocketClientTransport(BaseTransport):
    """WebSocket client transport for connecting to a remote endpoint.

    Used for the agent-side connection: TableBridge dials the Realtime
    endpoint with the authentication headers it requires.
    """

    def __init__(
        self,
        url: str | None = None,
        headers: dict[str, str] | None = None,
        **ws_kwargs: Any,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._ws: Any | None = None
        self._ws_kwargs = ws_kwargs

    async def connect(self, **kwargs) -> None:
        url = kwargs.get("url", self._url)
        if not url:
            raise ValueError("WebSocket URL is required")
        self._url = url
        logger.info(f"Connecting to WebSocket: {url}")
        self._ws = await websockets.asyncio.client.connect(
            url,
            additional_headers=self._headers,
            **self._ws_kwargs,
        )
        logger.info(f"Connected to {url}")

    async def send(self, data: bytes | str) -> None:
        if not self._ws:
            raise TransportClosed("Not connected")
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            raise TransportClosed(str(e)) from e

    async def recv(self) -> bytes | str:
        if not self._ws:
            raise TransportClosed("Not connected")
        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            raise TransportClosed(str(e)) from e

    async def disconnect(self) -> None:
        if self._ws:
            ws, self._ws = self._ws, None
            await ws.close()
            logger.info("WebSocket client disconnected")

    def is_connected(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN
