"""
传输会话抽象基类

一个会话对应到采集端的一条逻辑连接。会话只负责 open/send/receive/close
以及上报生命周期事件，重连策略由连接控制器负责。
"""

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

OpenCallback = Callable[[], Awaitable[None] | None]
CloseCallback = Callable[[int | None, str], Awaitable[None] | None]
ErrorCallback = Callable[[Exception], Awaitable[None] | None]


class TransportSession(ABC):
    """
    传输会话

    生命周期事件：
    - on_open: 握手成功
    - on_close(code, reason): 连接被关闭
    - on_error(error): 握手或连接异常

    open() 只上报 on_open / on_close / on_error 中的一个；
    之后连接断开时最多再上报一次 on_close 或 on_error。
    """

    def __init__(self, url: str):
        self._url = url

        # 回调函数
        self._on_open: OpenCallback | None = None
        self._on_close: CloseCallback | None = None
        self._on_error: ErrorCallback | None = None

        self._terminal_reported = False

    # ==================== 属性 ====================

    @property
    def url(self) -> str:
        return self._url

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """连接是否可用于发送"""
        pass

    # ==================== 回调注册 ====================

    def on_open(self, callback: OpenCallback) -> None:
        """注册握手成功回调"""
        self._on_open = callback

    def on_close(self, callback: CloseCallback) -> None:
        """注册连接关闭回调"""
        self._on_close = callback

    def on_error(self, callback: ErrorCallback) -> None:
        """注册连接异常回调"""
        self._on_error = callback

    # ==================== 连接操作 ====================

    @abstractmethod
    async def open(self) -> None:
        """
        建立连接

        不向调用方抛出异常，结果通过回调上报。
        """
        pass

    @abstractmethod
    async def send(self, payload: str) -> None:
        """
        发送一条消息

        Raises:
            TransportError: 连接未打开或发送失败
        """
        pass

    @abstractmethod
    async def receive(self) -> str | bytes:
        """
        接收下一条消息

        Raises:
            TransportError: 连接断开
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """立即关闭连接（幂等，未打开时也可调用）"""
        pass

    # ==================== 事件上报 ====================

    async def _emit_open(self) -> None:
        await self._invoke("open", self._on_open)

    async def _emit_close(self, code: int | None, reason: str = "") -> None:
        if self._terminal_reported:
            return
        self._terminal_reported = True
        await self._invoke("close", self._on_close, code, reason)

    async def _emit_error(self, error: Exception) -> None:
        if self._terminal_reported:
            return
        self._terminal_reported = True
        await self._invoke("error", self._on_error, error)

    async def _invoke(self, event: str, callback: Callable | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"会话回调异常 [{event}]: {e}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url={self._url!r}, open={self.is_open})"
