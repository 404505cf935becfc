"""
队列发送器测试

使用 FakeHost 代替连接控制器。
"""

import asyncio

import pytest

from smartlogs.core.drainer import QueueDrainer
from smartlogs.core.queue import OutboundQueue
from smartlogs.domain.errors import TransportError
from smartlogs.domain.models import ControllerStats


class FakeHost:
    """记录发送的控制器替身"""

    def __init__(self, stay_ready_on_reconnect: bool = False):
        self.ready = True
        self.stay_ready_on_reconnect = stay_ready_on_reconnect
        self.fail_next = 0
        self.sent: list[str] = []
        self.reconnects = 0
        self.finished = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def is_ready(self) -> bool:
        return self.ready

    async def send_now(self, payload: str) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.fail_next > 0:
                self.fail_next -= 1
                raise TransportError("send failed", operation="send")
            self.sent.append(payload)
        finally:
            self.in_flight -= 1

    def reconnect(self) -> None:
        self.reconnects += 1
        if not self.stay_ready_on_reconnect:
            self.ready = False

    def on_drain_finished(self) -> None:
        self.finished += 1


def make_drainer(host: FakeHost, *items: str, **kwargs) -> tuple[QueueDrainer, OutboundQueue]:
    queue = OutboundQueue()
    for item in items:
        queue.append(item)
    kwargs.setdefault("send_delay", 0.0)
    return QueueDrainer(host, queue, **kwargs), queue


class TestQueueDrainer:
    """发送循环测试"""

    @pytest.mark.asyncio
    async def test_sends_in_order(self, wait_until):
        """按入队顺序发送并清空队列"""
        host = FakeHost()
        drainer, queue = make_drainer(host, "m1", "m2", "m3", "m4")

        assert drainer.start()
        await wait_until(lambda: not drainer.is_running)

        assert host.sent == ["m1", "m2", "m3", "m4"]
        assert queue.is_empty
        assert host.finished == 1

    @pytest.mark.asyncio
    async def test_not_started_when_not_ready(self):
        """未就绪时不启动"""
        host = FakeHost()
        host.ready = False
        drainer, _ = make_drainer(host, "m1")

        assert not drainer.start()
        assert not drainer.is_running

    @pytest.mark.asyncio
    async def test_single_flight(self, wait_until):
        """并发启动只有一个发送循环"""
        host = FakeHost()
        drainer, queue = make_drainer(host)

        started = []
        for i in range(30):
            queue.append(f"m{i}")
            started.append(drainer.start())
            if i % 3 == 0:
                await asyncio.sleep(0)

        await wait_until(lambda: queue.is_empty and not drainer.is_running)

        assert started[0] is True
        assert host.max_in_flight == 1
        assert host.sent == [f"m{i}" for i in range(30)]

    @pytest.mark.asyncio
    async def test_flag_set_before_suspension(self):
        """start 返回前已置位"""
        host = FakeHost()
        drainer, _ = make_drainer(host, "m1")

        assert drainer.start()
        assert drainer.is_running
        assert not drainer.start()
        drainer.cancel()

    @pytest.mark.asyncio
    async def test_failure_keeps_head_and_reconnects(self, wait_until):
        """发送失败时消息保留在队头并触发重连"""
        host = FakeHost()
        host.fail_next = 1
        stats = ControllerStats()
        drainer, queue = make_drainer(host, "m1", "m2", stats=stats)

        drainer.start()
        await wait_until(lambda: not drainer.is_running)

        assert host.reconnects == 1
        assert host.sent == []
        assert queue.peek() == "m1"
        assert len(queue) == 2
        assert stats.send_failures == 1

        # 重新就绪后重试同一条消息
        host.ready = True
        drainer.start()
        await wait_until(lambda: not drainer.is_running)

        assert host.sent == ["m1", "m2"]
        assert stats.messages_sent == 2

    @pytest.mark.asyncio
    async def test_exits_when_no_longer_ready(self, wait_until):
        """连接不再就绪时退出循环"""
        host = FakeHost()
        drainer, queue = make_drainer(host, "m1", "m2", "m3")

        drainer.start()
        host.ready = False
        await wait_until(lambda: not drainer.is_running)

        assert len(queue) == 3
        assert host.finished == 1

    @pytest.mark.asyncio
    async def test_max_send_attempts_drops_poison_message(self, wait_until):
        """达到最大尝试次数后丢弃队头消息"""
        host = FakeHost(stay_ready_on_reconnect=True)
        host.fail_next = 2
        stats = ControllerStats()
        drainer, queue = make_drainer(host, "poison", "ok", max_send_attempts=2, stats=stats)

        drainer.start()
        await wait_until(lambda: not drainer.is_running)

        assert host.sent == ["ok"]
        assert stats.dropped_messages == 1
        assert queue.is_empty

    @pytest.mark.asyncio
    async def test_cancel(self):
        """cancel 停止循环（幂等）"""
        host = FakeHost()
        drainer, _ = make_drainer(host, "m1", "m2")

        drainer.start()
        drainer.cancel()
        drainer.cancel()
        await asyncio.sleep(0.01)

        assert not drainer.is_running
        assert host.finished == 0
