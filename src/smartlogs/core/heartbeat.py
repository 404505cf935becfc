"""
心跳定时器

连接就绪后周期性地把心跳信封放入发送队列，拆除连接时停止。
"""

import asyncio
from collections.abc import Callable

from loguru import logger

from smartlogs.domain.errors import SerializationError
from smartlogs.protocol import envelopes


def _build_heartbeat() -> str:
    return envelopes.encode(envelopes.heartbeat())


class HeartbeatTimer:
    """
    心跳定时器

    - 每个周期通过 enqueue 放入 {"action": "heartbeat", "payload": {}}
    - 序列化失败时直接触发 reconnect
    - stop() 之后不会再触发任何 tick
    """

    DEFAULT_INTERVAL = 20.0

    def __init__(
        self,
        enqueue: Callable[[str], None],
        reconnect: Callable[[], None],
        interval: float = DEFAULT_INTERVAL,
        build_payload: Callable[[], str] = _build_heartbeat,
    ):
        self._enqueue = enqueue
        self._reconnect = reconnect
        self._interval = interval
        self._build_payload = build_payload

        self._task: asyncio.Task | None = None
        self._running = False
        self._ticks = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def ticks(self) -> int:
        return self._ticks

    def start(self) -> None:
        """启动心跳（已运行时忽略）"""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._heartbeat_loop(), name="smartlogs-heartbeat")
        logger.debug(f"心跳已启动: 间隔={self._interval}s")

    def stop(self) -> None:
        """停止心跳（幂等，未启动时也可调用）"""
        was_running = self._running
        self._running = False

        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()

        if was_running:
            logger.debug("心跳已停止")

    async def _heartbeat_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)

            if not self._running:
                break

            self._tick()

    def _tick(self) -> None:
        self._ticks += 1
        try:
            payload = self._build_payload()
        except SerializationError as e:
            logger.warning(f"心跳序列化失败，触发重连: {e}")
            self._reconnect()
            return

        self._enqueue(payload)
