"""
SmartLogs 客户端

通过 WebSocket 把工作流日志推送到采集端。
"""

__version__ = "0.1.0"

from smartlogs.client import SmartLogs
from smartlogs.config import LogsConfig
from smartlogs.core.controller import ConnectionController
from smartlogs.domain.enums import ConnectionState, LogBodyType
from smartlogs.domain.errors import (
    ConfigurationError,
    SerializationError,
    SmartLogsError,
    TransportError,
)
from smartlogs.domain.models import LogChartData

__all__ = [
    "__version__",
    "ConfigurationError",
    "ConnectionController",
    "ConnectionState",
    "LogBodyType",
    "LogChartData",
    "LogsConfig",
    "SerializationError",
    "SmartLogs",
    "SmartLogsError",
    "TransportError",
]
