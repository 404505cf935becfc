"""
SmartLogs 客户端

同步调用方使用的入口。核心运行在后台线程的事件循环中，
所有调用通过 call_soon_threadsafe 提交，不会阻塞调用方，也不会抛出异常。

用法:
    logs = SmartLogs(origin="trainer")
    logs.create_workflow("run-1", "训练")
    logs.log("run-1", "epoch 1", {"loss": 0.42})
    logs.end_workflow("run-1")
    logs.close()
"""

import asyncio
import threading
from collections.abc import Callable
from typing import Any

from loguru import logger

from smartlogs.config import LogsConfig
from smartlogs.core.controller import ConnectionController, SessionFactory
from smartlogs.domain.enums import ConnectionState, LogBodyType
from smartlogs.domain.errors import ConfigurationError, SerializationError
from smartlogs.domain.models import LogChartData
from smartlogs.protocol import envelopes


class SmartLogs:
    """SmartLogs 客户端"""

    def __init__(
        self,
        origin: str = "",
        server_url: str = "",
        *,
        config: LogsConfig | None = None,
        session_factory: SessionFactory | None = None,
        autostart: bool = True,
    ):
        self._config = LogsConfig.from_env(config, origin=origin, server_url=server_url)
        self._session_factory = session_factory

        try:
            self._endpoint = self._config.resolve_endpoint()
        except ConfigurationError as e:
            logger.warning(f"SmartLogs 配置无效，日志不会发送: {e.message}")
            self._endpoint = None
        else:
            if self._endpoint is None:
                logger.info("SmartLogs 未启用，日志不会发送")

        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._controller: ConnectionController | None = None
        self._loop_ready = threading.Event()
        self._lock = threading.Lock()
        self._closed = False

        if autostart:
            self.start()

    # ==================== 属性 ====================

    @property
    def config(self) -> LogsConfig:
        return self._config

    @property
    def origin(self) -> str:
        return self._config.origin

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def enabled(self) -> bool:
        return self._endpoint is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> ConnectionState:
        if self._controller is None:
            return ConnectionState.DISCONNECTED
        return self._controller.state

    @property
    def queue_size(self) -> int:
        if self._controller is None:
            return 0
        return self._controller.queue_size

    def get_stats(self) -> dict[str, Any]:
        """统计信息（跨线程读取，近似值）"""
        if self._controller is None:
            return {"endpoint": self._endpoint, "state": ConnectionState.DISCONNECTED.value}
        return self._controller.get_stats()

    # ==================== 生命周期 ====================

    def start(self) -> None:
        """启动后台事件循环并连接"""
        with self._lock:
            if self._closed or self._thread is not None or not self.enabled:
                return

            self._thread = threading.Thread(
                target=self._run_event_loop,
                name="smartlogs-loop",
                daemon=True,
            )
            self._thread.start()

        self._loop_ready.wait()
        self.connect()

    def close(self, timeout: float = 5.0) -> None:
        """
        关闭客户端

        请求断开并等待队列发送完毕，超时后丢弃剩余消息。可重复调用。
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        loop, controller = self._loop, self._controller
        if loop is None or controller is None or loop.is_closed():
            return

        future = asyncio.run_coroutine_threadsafe(self._shutdown(controller, timeout), loop)
        try:
            future.result(timeout + 1.0)
        except TimeoutError:
            logger.warning("SmartLogs 关闭超时")
            future.cancel()
        except Exception as e:
            logger.warning(f"SmartLogs 关闭异常: {e}")

        loop.call_soon_threadsafe(loop.stop)
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)

    def __enter__(self) -> "SmartLogs":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _run_event_loop(self) -> None:
        """后台线程：运行事件循环"""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop

        try:
            self._controller = ConnectionController.from_config(self._config, self._session_factory)
        except ConfigurationError as e:
            logger.warning(f"SmartLogs 配置无效: {e.message}")
            self._controller = ConnectionController(None)
        finally:
            self._loop_ready.set()

        try:
            loop.run_forever()
        finally:
            try:
                loop.run_until_complete(loop.shutdown_asyncgens())
            finally:
                loop.close()

    async def _shutdown(self, controller: ConnectionController, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        # 未就绪时断开会直接拆除，先等握手完成再发送剩余消息
        if controller.queue_size and controller.state in (
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED_NOT_READY,
        ):
            await controller.wait_ready(timeout)

        controller.disconnect()
        if not await controller.wait_closed(max(deadline - loop.time(), 0.01)):
            logger.warning("SmartLogs 等待断开超时")
        await controller.aclose()

    # ==================== 线程桥接 ====================

    def _submit(self, func: Callable[..., Any], *args: Any) -> bool:
        loop = self._loop
        if self._closed or loop is None or self._controller is None:
            logger.debug("SmartLogs 未运行，丢弃调用")
            return False

        try:
            loop.call_soon_threadsafe(func, *args)
        except RuntimeError:
            # 事件循环已关闭
            logger.debug("SmartLogs 事件循环已关闭，丢弃调用")
            return False
        return True

    def _call(self, coro_factory: Callable[[ConnectionController], Any], timeout: float | None) -> Any:
        loop, controller = self._loop, self._controller
        if self._closed or loop is None or controller is None:
            return None

        future = asyncio.run_coroutine_threadsafe(coro_factory(controller), loop)
        try:
            return future.result(None if timeout is None else timeout + 1.0)
        except TimeoutError:
            future.cancel()
            return None

    # ==================== 连接控制 ====================

    def connect(self) -> None:
        if self._controller is not None:
            self._submit(self._controller.connect)

    def reconnect(self) -> None:
        if self._controller is not None:
            self._submit(self._controller.reconnect)

    def disconnect(self) -> None:
        if self._controller is not None:
            self._submit(self._controller.disconnect)

    def wait_ready(self, timeout: float | None = None) -> bool:
        """阻塞等待连接就绪"""
        return bool(self._call(lambda c: c.wait_ready(timeout), timeout))

    def flush(self, timeout: float | None = None) -> bool:
        """阻塞等待队列发送完毕"""
        return bool(self._call(lambda c: _wait_drained(c, timeout), timeout))

    # ==================== 日志接口 ====================

    def send(self, message: str) -> None:
        """发送一条已序列化的信封"""
        if self._controller is not None:
            self._submit(self._controller.enqueue, message)

    def create_workflow(self, workflow_id: str, title: str, description: str = "") -> None:
        self._emit(envelopes.create_workflow(workflow_id, title, description))

    def workflow(self, workflow_id: str, title: str, description: str = "") -> None:
        self.create_workflow(workflow_id, title, description)

    def log(
        self,
        workflow_id: str,
        message: str,
        body: Any = None,
        body_type: LogBodyType | str = LogBodyType.OBJECT,
        order: int = -1,
    ) -> None:
        """
        记录日志

        body 可以是字典、dataclass、带 to_dict()/model_dump() 的对象
        或任意可 JSON 序列化的值；无法序列化时以 {} 发送。
        """
        if not self.enabled:
            return

        try:
            body_type = LogBodyType(body_type)
        except ValueError:
            logger.warning(f"未知的 bodyType: {body_type}，按 object 发送")
            body_type = LogBodyType.OBJECT

        entry = envelopes.log_entry(
            workflow_id,
            message,
            {} if body is None else body,
            body_type=body_type,
            order=order,
            origin=self.origin,
        )
        try:
            payload = envelopes.encode(entry)
        except SerializationError as e:
            logger.warning(f"日志内容无法序列化，以空对象发送: {e}")
            entry["payload"]["body"] = {}
            payload = envelopes.encode(entry)

        self.send(payload)

    def chart(
        self,
        workflow_id: str,
        message: str,
        data: LogChartData,
        title: str = "",
        order: int = -1,
    ) -> None:
        """记录图表，body 为 {"x": [...], "y": [...], "title"?}"""
        body = data.to_dict()
        if title:
            body["title"] = title
        self.log(workflow_id, message, body, body_type=LogBodyType.CHART, order=order)

    def log_chart(
        self,
        workflow_id: str,
        message: str,
        data: LogChartData,
        title: str = "",
        order: int = -1,
    ) -> None:
        self.chart(workflow_id, message, data, title=title, order=order)

    def image(self, workflow_id: str, message: str, image: str, order: int = -1) -> None:
        """记录图片，image 一般为 URL 或 base64"""
        self.log(workflow_id, message, {"image": image}, body_type=LogBodyType.IMAGE, order=order)

    def log_image(self, workflow_id: str, message: str, image: str, order: int = -1) -> None:
        self.image(workflow_id, message, image, order=order)

    def end_workflow(self, workflow_id: str, order: int = -1) -> None:
        self._emit(envelopes.end_workflow(workflow_id, order=order, origin=self.origin))

    def _emit(self, message: dict[str, Any]) -> None:
        if not self.enabled:
            return
        try:
            payload = envelopes.encode(message)
        except SerializationError as e:
            logger.warning(f"消息序列化失败，已丢弃: {e}")
            return
        self.send(payload)

    def __repr__(self) -> str:
        return f"SmartLogs(origin={self.origin!r}, endpoint={self._endpoint!r}, state={self.state.value})"


async def _wait_drained(controller: ConnectionController, timeout: float | None) -> bool:
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    while controller.queue_size > 0:
        if deadline is not None and loop.time() >= deadline:
            return False
        await asyncio.sleep(0.01)
    return True
