"""
SmartLogs 错误定义

所有错误都在核心内部处理，不会抛给 log/chart/image 等门面调用方。
"""

from typing import Any


class SmartLogsError(Exception):
    """SmartLogs 基础错误"""

    def __init__(
        self,
        message: str,
        code: str = "SMARTLOGS_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class TransportError(SmartLogsError):
    """传输层错误（打开/发送/接收失败）"""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, code="TRANSPORT_ERROR", details=details)
        self.operation = operation


class SerializationError(SmartLogsError):
    """序列化错误"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, code="SERIALIZATION_ERROR", details=details)


class ConfigurationError(SmartLogsError):
    """配置错误（无可用的采集端地址等）"""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, code="CONFIG_ERROR", details=details)
        self.config_key = config_key
