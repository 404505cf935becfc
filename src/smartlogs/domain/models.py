"""
SmartLogs 数据模型
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class LogChartData:
    """图表数据"""

    x: list[float] = field(default_factory=list)
    y: list[float] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": [float(v) for v in self.x],
            "y": [float(v) for v in self.y],
        }


@dataclass
class ControllerStats:
    """连接控制器统计"""

    messages_sent: int = 0
    send_failures: int = 0
    dropped_messages: int = 0
    reconnect_count: int = 0
    time_syncs: int = 0
    teardowns: int = 0
    last_ready_time: datetime | None = None
    last_failure_time: datetime | None = None
    last_failure_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "messages_sent": self.messages_sent,
            "send_failures": self.send_failures,
            "dropped_messages": self.dropped_messages,
            "reconnect_count": self.reconnect_count,
            "time_syncs": self.time_syncs,
            "teardowns": self.teardowns,
            "last_ready_time": (
                self.last_ready_time.isoformat()
                if self.last_ready_time
                else None
            ),
            "last_failure_time": (
                self.last_failure_time.isoformat()
                if self.last_failure_time
                else None
            ),
            "last_failure_reason": self.last_failure_reason,
        }
