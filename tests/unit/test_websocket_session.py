"""
WebSocket 会话测试

使用本地 websockets 服务端。
"""

import json
import socket
from types import SimpleNamespace

import pytest
import pytest_asyncio
from websockets.asyncio.server import serve

from smartlogs.core.controller import ConnectionController
from smartlogs.domain.errors import TransportError
from smartlogs.transport.websocket import WebSocketSession


@pytest_asyncio.fixture
async def ws_server():
    """本地采集端：记录收到的消息，可配置问候消息或主动关闭"""
    state = SimpleNamespace(received=[], greeting=None, close=None)

    async def handler(websocket):
        if state.close is not None:
            await websocket.close(*state.close)
            return
        if state.greeting is not None:
            await websocket.send(state.greeting)
        async for message in websocket:
            state.received.append(message)

    async with serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        state.url = f"ws://127.0.0.1:{port}"
        yield state


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def track_events(session: WebSocketSession) -> list:
    events = []
    session.on_open(lambda: events.append(("open",)))
    session.on_close(lambda code, reason: events.append(("close", code, reason)))
    session.on_error(lambda error: events.append(("error", error)))
    return events


class TestWebSocketSession:
    """WebSocketSession 测试"""

    @pytest.mark.asyncio
    async def test_open_send_receive(self, ws_server, wait_until):
        """握手成功后可以收发消息"""
        ws_server.greeting = '{"action": "requestTimeSync"}'
        session = WebSocketSession(ws_server.url, open_timeout=2.0)
        events = track_events(session)

        await session.open()
        assert events == [("open",)]
        assert session.is_open

        assert json.loads(await session.receive()) == {"action": "requestTimeSync"}

        await session.send('{"action": "heartbeat", "payload": {}}')
        await wait_until(lambda: len(ws_server.received) == 1)
        assert json.loads(ws_server.received[0])["action"] == "heartbeat"

        await session.close()
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_open_failure_reports_error(self):
        """连接失败只上报一次 on_error，不抛异常"""
        session = WebSocketSession(f"ws://127.0.0.1:{unused_port()}", open_timeout=2.0)
        events = track_events(session)

        await session.open()

        assert len(events) == 1
        assert events[0][0] == "error"
        assert isinstance(events[0][1], TransportError)
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_server_close_reported(self, ws_server):
        """服务端关闭时 receive 抛出 TransportError 并上报 on_close"""
        ws_server.close = (1001, "bye")
        session = WebSocketSession(ws_server.url, open_timeout=2.0)
        events = track_events(session)

        await session.open()
        with pytest.raises(TransportError):
            await session.receive()

        assert events == [("open",), ("close", 1001, "bye")]

        with pytest.raises(TransportError):
            await session.receive()
        assert events.count(("close", 1001, "bye")) == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_send_before_open_raises(self):
        session = WebSocketSession("ws://127.0.0.1:1")
        with pytest.raises(TransportError):
            await session.send("x")

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, ws_server):
        """close 可重复调用，本地关闭不上报 on_close"""
        session = WebSocketSession(ws_server.url, open_timeout=2.0)
        events = track_events(session)

        await session.close()
        await session.open()
        assert events == []

        other = WebSocketSession(ws_server.url, open_timeout=2.0)
        other_events = track_events(other)
        await other.open()
        await other.close()
        await other.close()

        assert other_events == [("open",)]
        with pytest.raises(TransportError):
            await other.send("x")


class TestControllerOverWebSocket:
    """控制器与真实 WebSocket 联调"""

    @pytest.mark.asyncio
    async def test_time_sync_then_messages(self, ws_server, wait_until):
        controller = ConnectionController(
            ws_server.url,
            disconnect_grace=0.01,
            send_delay=0.0,
        )
        try:
            controller.connect()
            assert await controller.wait_ready(2.0)

            controller.enqueue('{"action": "createWorkflow", "payload": {"workflowId": "wf"}}')
            controller.enqueue('{"action": "endWorkflow", "payload": {"workflowId": "wf"}}')
            await wait_until(lambda: len(ws_server.received) == 3)

            actions = [json.loads(m)["action"] for m in ws_server.received]
            assert actions == ["timeSync", "createWorkflow", "endWorkflow"]

            controller.disconnect()
            assert await controller.wait_closed(2.0)
        finally:
            await controller.aclose()
