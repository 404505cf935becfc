"""
单元测试公共夹具

FakeSession: 可编排失败的内存会话，记录所有发送的消息。
"""

import asyncio
import json

import pytest
import pytest_asyncio

from smartlogs.core.controller import ConnectionController
from smartlogs.domain.errors import TransportError
from smartlogs.transport.base import TransportSession

TEST_ENDPOINT = "ws://collector.test/logs"

_CLOSED = object()


class FakeSession(TransportSession):
    """内存会话"""

    def __init__(
        self,
        url: str,
        *,
        auto_open: bool = True,
        fail_open: bool = False,
        fail_sends: int = 0,
    ):
        super().__init__(url)
        self.auto_open = auto_open
        self.fail_open = fail_open
        self.fail_sends = fail_sends
        self.send_gate: asyncio.Event | None = None

        self.sent: list[str] = []
        self.open_calls = 0
        self.close_calls = 0
        self.opened = False
        self.closed = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return self.opened and not self.closed

    async def open(self) -> None:
        self.open_calls += 1
        if not self.auto_open:
            return
        if self.fail_open:
            await self._emit_error(TransportError("connection refused", operation="open"))
            return
        await self.trigger_open()

    async def send(self, payload: str) -> None:
        if not self.is_open:
            raise TransportError("连接未打开", operation="send")
        if self.fail_sends > 0:
            self.fail_sends -= 1
            raise TransportError("send failed", operation="send")
        if self.send_gate is not None:
            await self.send_gate.wait()
        self.sent.append(payload)

    async def receive(self) -> str | bytes:
        item = await self._inbound.get()
        if item is _CLOSED:
            raise TransportError("连接已断开", operation="receive")
        return item

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self._inbound.put_nowait(_CLOSED)

    # ==================== 测试控制 ====================

    async def trigger_open(self) -> None:
        """模拟握手成功"""
        self.opened = True
        await self._emit_open()

    async def drop(self, code: int = 1006, reason: str = "") -> None:
        """模拟服务端关闭连接"""
        self.closed = True
        self._inbound.put_nowait(_CLOSED)
        await self._emit_close(code, reason)

    async def fail(self, error: Exception) -> None:
        """模拟连接异常"""
        self.closed = True
        self._inbound.put_nowait(_CLOSED)
        await self._emit_error(error)

    def push(self, raw: str | bytes) -> None:
        """模拟服务端消息"""
        self._inbound.put_nowait(raw)

    def actions(self) -> list[str]:
        return [json.loads(m)["action"] for m in self.sent]

    def messages(self) -> list[str]:
        """除 timeSync / heartbeat 外的消息"""
        return [
            m for m in self.sent
            if json.loads(m)["action"] not in ("timeSync", "heartbeat")
        ]


class FakeSessionFactory:
    """按顺序创建 FakeSession，plans 中的参数依次用于前几个会话"""

    def __init__(self, **defaults):
        self.defaults = defaults
        self.plans: list[dict] = []
        self.sessions: list[FakeSession] = []

    def __call__(self, url: str) -> FakeSession:
        options = dict(self.defaults)
        if self.plans:
            options.update(self.plans.pop(0))
        session = FakeSession(url, **options)
        self.sessions.append(session)
        return session

    @property
    def latest(self) -> FakeSession:
        return self.sessions[-1]


@pytest.fixture(autouse=True)
def clean_logs_env(monkeypatch):
    """隔离 LOGS_* 环境变量"""
    import os

    for key in list(os.environ):
        if key.startswith("LOGS_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def wait_until():
    """轮询等待条件成立"""

    async def _wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() >= deadline:
                raise AssertionError("等待条件超时")
            await asyncio.sleep(interval)

    return _wait_until


@pytest_asyncio.fixture
async def make_controller(session_factory):
    """创建使用 FakeSession 的控制器，测试结束后关闭"""
    created: list[ConnectionController] = []

    def _make(endpoint: str | None = TEST_ENDPOINT, **kwargs) -> ConnectionController:
        options = {
            "heartbeat_interval": 60.0,
            "disconnect_grace": 0.01,
            "send_delay": 0.0,
            "reconnect_base_delay": 0.01,
            "reconnect_max_delay": 0.05,
        }
        options.update(kwargs)
        controller = ConnectionController(endpoint, session_factory=session_factory, **options)
        created.append(controller)
        return controller

    yield _make

    for controller in created:
        await controller.aclose()
