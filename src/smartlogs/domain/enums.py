"""
SmartLogs 枚举定义
"""

from enum import Enum


class ConnectionState(str, Enum):
    """连接状态"""

    DISCONNECTED = "disconnected"                # 未连接
    CONNECTING = "connecting"                    # 正在握手
    CONNECTED_NOT_READY = "connected_not_ready"  # 已连接，等待时间同步
    READY = "ready"                              # 时间同步完成，可发送
    DISCONNECTING = "disconnecting"              # 正在拆除连接


class LogBodyType(str, Enum):
    """日志内容类型"""

    CHART = "chart"
    IMAGE = "image"
    OBJECT = "object"


class Action(str, Enum):
    """消息动作"""

    # 客户端 -> 服务端
    TIME_SYNC = "timeSync"
    HEARTBEAT = "heartbeat"
    CREATE_WORKFLOW = "createWorkflow"
    LOG = "log"
    END_WORKFLOW = "endWorkflow"

    # 服务端 -> 客户端
    REQUEST_TIME_SYNC = "requestTimeSync"
