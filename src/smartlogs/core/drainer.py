"""
队列发送器

连接就绪后按 FIFO 顺序逐条发送队列中的消息，同一时间最多一个发送循环。
"""

import asyncio
from typing import Protocol

from loguru import logger

from smartlogs.core.queue import OutboundQueue
from smartlogs.domain.errors import TransportError
from smartlogs.domain.models import ControllerStats


class DrainHost(Protocol):
    """发送器依赖的控制器接口"""

    @property
    def is_ready(self) -> bool:
        """连接是否就绪"""
        ...

    async def send_now(self, payload: str) -> None:
        """通过当前会话发送，失败抛出 TransportError"""
        ...

    def reconnect(self) -> None:
        """重新连接"""
        ...

    def on_drain_finished(self) -> None:
        """发送循环结束通知"""
        ...


class QueueDrainer:
    """
    队列发送器

    - start() 在就绪且没有发送循环时启动，先置位再挂起，保证单实例
    - 发送成功才从队头移除；失败时消息保留在队头并触发重连
    - 连接不再就绪时退出，等待下一次就绪重新启动
    - max_send_attempts > 0 时，队头消息连续失败达到次数后丢弃
    """

    SEND_DELAY = 0.001

    def __init__(
        self,
        host: DrainHost,
        queue: OutboundQueue,
        send_delay: float = SEND_DELAY,
        max_send_attempts: int = 0,
        stats: ControllerStats | None = None,
    ):
        self._host = host
        self._queue = queue
        self._send_delay = send_delay
        self._max_send_attempts = max_send_attempts
        self._stats = stats or ControllerStats()

        self._running = False
        self._task: asyncio.Task | None = None
        self._head_failures = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> bool:
        """
        启动发送循环

        Returns:
            是否启动了新的发送循环
        """
        if not self._host.is_ready:
            return False
        if self._running:
            return False

        self._running = True
        self._task = asyncio.create_task(self._drain_loop(), name="smartlogs-drain")
        return True

    def cancel(self) -> None:
        """取消发送循环（幂等）"""
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
        self._running = False

    async def _drain_loop(self) -> None:
        try:
            while not self._queue.is_empty:
                if not self._host.is_ready:
                    logger.debug(f"连接未就绪，暂停发送，剩余 {len(self._queue)} 条")
                    break

                message = self._queue.peek()
                try:
                    await self._host.send_now(message)
                except TransportError as e:
                    self._on_send_failure(e)
                else:
                    self._queue.pop()
                    self._head_failures = 0
                    self._stats.messages_sent += 1

                await asyncio.sleep(self._send_delay)
        finally:
            self._running = False
            self._task = None

        self._host.on_drain_finished()

    def _on_send_failure(self, error: TransportError) -> None:
        self._head_failures += 1
        self._stats.send_failures += 1

        if self._max_send_attempts and self._head_failures >= self._max_send_attempts:
            self._queue.pop()
            self._stats.dropped_messages += 1
            logger.error(f"消息连续发送失败 {self._head_failures} 次，已丢弃: {error}")
            self._head_failures = 0

        # 只有当前会话的失败才触发重连，重连中的旧会话失败忽略
        if self._host.is_ready:
            logger.warning(f"发送失败，触发重连: {error}")
            self._host.reconnect()
