"""
连接控制器

管理与采集端的连接生命周期：
- DISCONNECTED -> CONNECTING -> CONNECTED_NOT_READY -> READY
- 时间同步完成后启动心跳和队列发送
- 断开请求等待宽限期，队列未清空时延迟到发送完成后再拆除
- 未就绪时直接拆除，队列中的消息保留到下次连接

所有状态只在一个事件循环中修改，检查与置位之间没有 await。
"""

import asyncio
from collections.abc import Callable, Coroutine
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Any

from loguru import logger

from smartlogs.core.backoff import ExponentialBackoff
from smartlogs.core.drainer import QueueDrainer
from smartlogs.core.heartbeat import HeartbeatTimer
from smartlogs.core.queue import OutboundQueue
from smartlogs.domain.enums import Action, ConnectionState
from smartlogs.domain.errors import SerializationError, TransportError
from smartlogs.domain.models import ControllerStats
from smartlogs.protocol import envelopes
from smartlogs.transport.base import TransportSession
from smartlogs.transport.websocket import WebSocketSession

if TYPE_CHECKING:
    from smartlogs.config import LogsConfig

SessionFactory = Callable[[str], TransportSession]
StateCallback = Callable[[ConnectionState, ConnectionState], None]


class ConnectionController:
    """
    连接控制器

    endpoint 为空时所有操作都是空操作。
    除 enqueue 外的公开方法都需要在事件循环线程中调用。
    """

    def __init__(
        self,
        endpoint: str | None,
        *,
        session_factory: SessionFactory | None = None,
        heartbeat_interval: float = 20.0,
        disconnect_grace: float = 2.0,
        send_delay: float = 0.001,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
        max_send_attempts: int = 0,
    ):
        self._endpoint = endpoint or None
        self._session_factory: SessionFactory = session_factory or WebSocketSession
        self._disconnect_grace = disconnect_grace

        self._state = ConnectionState.DISCONNECTED
        self._session: TransportSession | None = None
        self._pending_disconnect = False

        self._stats = ControllerStats()
        self._queue = OutboundQueue()
        self._drainer = QueueDrainer(
            self,
            self._queue,
            send_delay=send_delay,
            max_send_attempts=max_send_attempts,
            stats=self._stats,
        )
        self._heartbeat = HeartbeatTimer(
            enqueue=self.enqueue,
            reconnect=self.reconnect,
            interval=heartbeat_interval,
        )
        self._backoff = ExponentialBackoff(
            initial=reconnect_base_delay,
            maximum=reconnect_max_delay,
        )

        self._tasks: set[asyncio.Task] = set()
        self._retry_task: asyncio.Task | None = None
        self._disconnect_task: asyncio.Task | None = None

        self._ready_event = asyncio.Event()
        self._closed_event = asyncio.Event()
        self._closed_event.set()

        self._state_callbacks: list[StateCallback] = []

    @classmethod
    def from_config(
        cls,
        config: "LogsConfig",
        session_factory: SessionFactory | None = None,
    ) -> "ConnectionController":
        """
        从配置创建控制器

        Raises:
            ConfigurationError: 地址不可用
        """
        if session_factory is None:
            session_factory = partial(
                WebSocketSession,
                open_timeout=config.open_timeout,
                ping_interval=config.ping_interval or None,
            )

        return cls(
            config.resolve_endpoint(),
            session_factory=session_factory,
            heartbeat_interval=config.heartbeat_interval,
            disconnect_grace=config.disconnect_grace,
            send_delay=config.send_delay,
            reconnect_base_delay=config.reconnect_base_delay,
            reconnect_max_delay=config.reconnect_max_delay,
            max_send_attempts=config.max_send_attempts,
        )

    # ==================== 属性 ====================

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def enabled(self) -> bool:
        return self._endpoint is not None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def pending_disconnect(self) -> bool:
        return self._pending_disconnect

    @property
    def drain_running(self) -> bool:
        return self._drainer.is_running

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat.is_running

    @property
    def session(self) -> TransportSession | None:
        return self._session

    @property
    def stats(self) -> ControllerStats:
        return self._stats

    def on_state_change(self, callback: StateCallback) -> None:
        """注册状态变化回调 (old, new)"""
        self._state_callbacks.append(callback)

    # ==================== 公开操作 ====================

    def connect(self) -> None:
        """建立连接，仅在 DISCONNECTED 状态下生效；同时撤销尚未执行的断开请求"""
        if not self.enabled:
            return

        self._pending_disconnect = False
        self._cancel_disconnect()
        if self._state is not ConnectionState.DISCONNECTED:
            logger.debug(f"忽略连接请求，当前状态: {self._state.value}")
            return

        logger.info(f"连接采集端: {self._endpoint}")
        self._open_new_session()

    def enqueue(self, payload: str) -> None:
        """追加一条已序列化的消息并尝试启动发送"""
        if not self.enabled:
            return
        if not isinstance(payload, str):
            logger.warning(f"忽略非字符串消息: {type(payload).__name__}")
            return

        self._queue.append(payload)
        self._drainer.start()

    def disconnect(self) -> None:
        """请求断开，宽限期后执行。宽限期内重复调用合并为一次"""
        if not self.enabled:
            return
        if self._disconnect_task is not None and not self._disconnect_task.done():
            return
        self._disconnect_task = self._spawn(self._disconnect_after_grace(), "disconnect")

    def reconnect(self) -> None:
        """丢弃当前会话并立即打开新会话"""
        if not self.enabled:
            return
        if self._state is ConnectionState.DISCONNECTING:
            return

        self._stats.reconnect_count += 1
        logger.info(f"重新连接采集端 (第 {self._stats.reconnect_count} 次)")
        self._open_new_session()

    async def send_now(self, payload: str) -> None:
        """通过当前会话直接发送"""
        session = self._session
        if session is None:
            raise TransportError("没有可用的会话", operation="send")
        await session.send(payload)

    def on_drain_finished(self) -> None:
        """发送循环结束：队列已空且有延迟断开时执行断开"""
        if self._queue.is_empty and self._pending_disconnect:
            logger.info("队列已发送完毕，执行延迟断开")
            self._pending_disconnect = False
            self.disconnect()

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """等待进入 READY，超时返回 False"""
        if not self.enabled:
            return False
        try:
            await asyncio.wait_for(self._ready_event.wait(), timeout)
            return True
        except TimeoutError:
            return False

    async def wait_closed(self, timeout: float | None = None) -> bool:
        """等待连接拆除完成，超时返回 False"""
        try:
            await asyncio.wait_for(self._closed_event.wait(), timeout)
            return True
        except TimeoutError:
            return False

    def get_stats(self) -> dict[str, Any]:
        """获取统计信息"""
        return {
            "endpoint": self._endpoint,
            "state": self._state.value,
            "queue_size": len(self._queue),
            "total_enqueued": self._queue.total_enqueued,
            "drain_running": self._drainer.is_running,
            "pending_disconnect": self._pending_disconnect,
            "heartbeat_running": self._heartbeat.is_running,
            **self._stats.to_dict(),
        }

    async def aclose(self) -> None:
        """立即停止所有后台任务并关闭会话，丢弃未发送的消息"""
        self._heartbeat.stop()
        self._drainer.cancel()
        self._cancel_retry()
        self._disconnect_task = None

        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        session, self._session = self._session, None
        if session is not None:
            await session.close()

        dropped = self._queue.clear()
        if dropped:
            logger.warning(f"丢弃 {dropped} 条未发送消息")

        self._pending_disconnect = False
        self._set_state(ConnectionState.DISCONNECTED)
        self._closed_event.set()

    # ==================== 会话管理 ====================

    def _open_new_session(self) -> None:
        self._cancel_retry()

        old_session = self._session
        session = self._session_factory(self._endpoint)
        session.on_open(partial(self._handle_open, session))
        session.on_close(partial(self._handle_close, session))
        session.on_error(partial(self._handle_error, session))

        self._session = session
        self._closed_event.clear()
        self._set_state(ConnectionState.CONNECTING)

        if old_session is not None:
            self._spawn(old_session.close(), "close")
        self._spawn(session.open(), "open")

    async def _handle_open(self, session: TransportSession) -> None:
        if session is not self._session:
            await session.close()
            return
        if self._state is not ConnectionState.CONNECTING:
            return

        self._set_state(ConnectionState.CONNECTED_NOT_READY)
        self._spawn(self._receive_loop(session), "receive")
        await self._sync_time(session)

    async def _handle_close(self, session: TransportSession, code: int | None, reason: str) -> None:
        if session is not self._session:
            return
        logger.info(f"连接已关闭: code={code} reason={reason!r}")
        self._on_connection_lost(f"closed: code={code} reason={reason}")

    async def _handle_error(self, session: TransportSession, error: Exception) -> None:
        if session is not self._session:
            return
        logger.warning(f"连接异常: {error}")
        self._on_connection_lost(str(error))

    def _on_connection_lost(self, reason: str) -> None:
        self._record_failure(reason)

        if self._state is ConnectionState.CONNECTING:
            self._schedule_retry()
            return

        if self._state in (ConnectionState.READY, ConnectionState.CONNECTED_NOT_READY):
            self._heartbeat.stop()
            self._set_state(ConnectionState.DISCONNECTED)
            self.disconnect()

    def _schedule_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            return

        delay = self._backoff.next_backoff()
        logger.info(f"握手失败，{delay:.2f}s 后重试 (第 {self._backoff.attempt} 次)")
        self._retry_task = self._spawn(self._retry_after(delay), "retry")

    async def _retry_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._retry_task = None
        if self._state is not ConnectionState.CONNECTING:
            return
        self._stats.reconnect_count += 1
        self._open_new_session()

    def _cancel_retry(self) -> None:
        task, self._retry_task = self._retry_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ==================== 时间同步 ====================

    async def _sync_time(self, session: TransportSession) -> bool:
        """直接在会话上发送 timeSync，成功后进入 READY"""
        try:
            payload = envelopes.encode(envelopes.time_sync())
        except SerializationError as e:
            logger.error(f"时间同步消息序列化失败: {e}")
            return False

        try:
            await session.send(payload)
        except TransportError as e:
            if session is self._session:
                logger.warning(f"时间同步失败，触发重连: {e}")
                self._record_failure(str(e))
                self.reconnect()
            return False

        if session is not self._session:
            return False

        self._stats.time_syncs += 1
        logger.debug("时间同步已发送")

        if self._state is ConnectionState.CONNECTED_NOT_READY:
            self._on_ready()
        return True

    def _on_ready(self) -> None:
        self._set_state(ConnectionState.READY)
        self._backoff.reset()
        self._stats.last_ready_time = datetime.now()
        self._heartbeat.start()
        self._drainer.start()

    # ==================== 接收 ====================

    async def _receive_loop(self, session: TransportSession) -> None:
        while session is self._session:
            try:
                raw = await session.receive()
            except TransportError as e:
                logger.debug(f"接收循环结束: {e}")
                return

            self._handle_message(session, raw)

    def _handle_message(self, session: TransportSession, raw: str | bytes) -> None:
        try:
            message = envelopes.decode(raw)
        except SerializationError as e:
            logger.warning(f"无法解析服务端消息: {e}")
            return

        if message is None:
            return

        action = message.get("action")
        if action == Action.REQUEST_TIME_SYNC.value:
            logger.debug("收到时间同步请求")
            self._spawn(self._sync_time(session), "time-sync")
        else:
            logger.debug(f"忽略服务端消息: {action}")

    # ==================== 断开 ====================

    async def _disconnect_after_grace(self) -> None:
        await asyncio.sleep(self._disconnect_grace)
        self._disconnect_task = None

        if not self._queue.is_empty:
            # 只有 READY 时发送循环才能清空队列
            if self.is_ready:
                self._pending_disconnect = True
                logger.info(f"队列中还有 {len(self._queue)} 条消息，发送完毕后断开")
                return
            logger.info(f"连接未就绪，{len(self._queue)} 条消息保留到下次连接")

        await self._teardown()

    def _cancel_disconnect(self) -> None:
        task, self._disconnect_task = self._disconnect_task, None
        if task is not None and not task.done():
            logger.info("取消宽限期中的断开请求")
            task.cancel()

    async def _teardown(self) -> None:
        if self._state is ConnectionState.DISCONNECTING:
            return
        if self._state is ConnectionState.DISCONNECTED and self._session is None:
            return

        self._set_state(ConnectionState.DISCONNECTING)
        self._cancel_retry()
        self._heartbeat.stop()
        self._drainer.cancel()

        session, self._session = self._session, None
        if session is not None:
            await session.close()

        self._pending_disconnect = False
        self._stats.teardowns += 1
        self._set_state(ConnectionState.DISCONNECTED)
        self._closed_event.set()
        logger.info("已断开采集端连接")

    # ==================== 内部工具 ====================

    def _set_state(self, state: ConnectionState) -> None:
        old = self._state
        if old is state:
            return

        self._state = state
        if state is ConnectionState.READY:
            self._ready_event.set()
        else:
            self._ready_event.clear()

        logger.debug(f"连接状态: {old.value} -> {state.value}")
        for callback in self._state_callbacks:
            try:
                callback(old, state)
            except Exception as e:
                logger.error(f"状态回调异常: {e}")

    def _record_failure(self, reason: str) -> None:
        self._stats.last_failure_time = datetime.now()
        self._stats.last_failure_reason = reason

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"smartlogs-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"后台任务异常 [{task.get_name()}]: {error!r}")

    def __repr__(self) -> str:
        return f"ConnectionController(endpoint={self._endpoint!r}, state={self._state.value})"
