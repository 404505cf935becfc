"""
SmartLogs 核心

连接控制器、待发送队列、队列发送器、心跳定时器。
"""

from smartlogs.core.backoff import ExponentialBackoff
from smartlogs.core.controller import ConnectionController, SessionFactory
from smartlogs.core.drainer import QueueDrainer
from smartlogs.core.heartbeat import HeartbeatTimer
from smartlogs.core.queue import OutboundQueue

__all__ = [
    "ConnectionController",
    "ExponentialBackoff",
    "HeartbeatTimer",
    "OutboundQueue",
    "QueueDrainer",
    "SessionFactory",
]
