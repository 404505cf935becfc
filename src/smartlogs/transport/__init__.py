"""
传输层

TransportSession 定义会话接口，WebSocketSession 为默认实现。
"""

from smartlogs.transport.base import TransportSession
from smartlogs.transport.websocket import WebSocketSession

__all__ = [
    "TransportSession",
    "WebSocketSession",
]
