"""
SmartLogs 领域层
"""

from smartlogs.domain.enums import Action, ConnectionState, LogBodyType
from smartlogs.domain.errors import (
    ConfigurationError,
    SerializationError,
    SmartLogsError,
    TransportError,
)
from smartlogs.domain.models import ControllerStats, LogChartData

__all__ = [
    "Action",
    "ConnectionState",
    "LogBodyType",
    "SmartLogsError",
    "TransportError",
    "SerializationError",
    "ConfigurationError",
    "ControllerStats",
    "LogChartData",
]
