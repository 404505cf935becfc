"""
WebSocket 传输会话

基于 websockets 的 asyncio 客户端实现 TransportSession。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from smartlogs.domain.errors import TransportError
from smartlogs.transport.base import TransportSession

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection


class WebSocketSession(TransportSession):
    """
    WebSocket 会话

    每个实例只连接一次；重连时由控制器创建新的会话。
    """

    OPEN_TIMEOUT = 10.0
    PING_INTERVAL = 20.0
    PING_TIMEOUT = 20.0
    CLOSE_TIMEOUT = 1.0

    def __init__(
        self,
        url: str,
        open_timeout: float = OPEN_TIMEOUT,
        ping_interval: float | None = PING_INTERVAL,
        ping_timeout: float | None = PING_TIMEOUT,
        close_timeout: float = CLOSE_TIMEOUT,
    ):
        super().__init__(url)
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._close_timeout = close_timeout

        self._ws: ClientConnection | None = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return (
            self._ws is not None
            and not self._closing
            and self._ws.state is State.OPEN
        )

    async def open(self) -> None:
        if self._ws is not None or self._closing:
            return

        try:
            ws = await websockets.connect(
                self._url,
                open_timeout=self._open_timeout,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
                close_timeout=self._close_timeout,
            )
        except TimeoutError:
            logger.warning(f"WebSocket 握手超时: {self._url}")
            await self._emit_error(TransportError("握手超时", operation="open"))
            return
        except Exception as e:
            logger.warning(f"WebSocket 连接失败: {self._url} - {e}")
            await self._emit_error(TransportError(f"连接失败: {e}", operation="open"))
            return

        if self._closing:
            # 握手期间已被关闭
            await self._safe_close(ws)
            return

        self._ws = ws
        logger.info(f"WebSocket 已连接: {self._url}")
        await self._emit_open()

    async def send(self, payload: str) -> None:
        ws = self._ws
        if ws is None or not self.is_open:
            raise TransportError("连接未打开", operation="send", details={"url": self._url})

        try:
            await ws.send(payload)
        except (WebSocketException, OSError) as e:
            raise TransportError(f"发送失败: {e}", operation="send") from e

    async def receive(self) -> str | bytes:
        ws = self._ws
        if ws is None:
            raise TransportError("连接未打开", operation="receive")

        try:
            return await ws.recv()
        except ConnectionClosed as e:
            if not self._closing:
                code = e.rcvd.code if e.rcvd else None
                reason = e.rcvd.reason if e.rcvd else ""
                logger.info(f"WebSocket 已关闭: code={code} reason={reason!r}")
                await self._emit_close(code, reason)
            raise TransportError(f"连接已断开: {e}", operation="receive") from e
        except (WebSocketException, OSError) as e:
            if not self._closing:
                await self._emit_error(e)
            raise TransportError(f"接收失败: {e}", operation="receive") from e

    async def close(self) -> None:
        self._closing = True
        ws = self._ws
        if ws is None:
            return
        await self._safe_close(ws)

    async def _safe_close(self, ws: ClientConnection) -> None:
        try:
            await ws.close()
        except Exception as e:
            logger.debug(f"关闭 WebSocket 异常: {e}")
