"""
消息信封

线上格式: {"action": <string>, "payload": <object>}，UTF-8 JSON 文本帧。
构造函数返回字典，由 encode() 序列化为核心队列接受的字符串。
"""

from typing import Any

from smartlogs.domain.enums import Action, LogBodyType
from smartlogs.utils import json
from smartlogs.utils.time import now_iso, precise_time_str


def envelope(action: Action | str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    """构造信封"""
    name = action.value if isinstance(action, Action) else action
    return {"action": name, "payload": payload or {}}


def encode(message: dict[str, Any]) -> str:
    """序列化信封，失败抛出 SerializationError"""
    return json.dumps(message)


def decode(raw: str | bytes) -> dict[str, Any] | None:
    """
    解析服务端消息

    Returns:
        信封字典；不是 JSON 对象时返回 None

    Raises:
        SerializationError: 不是合法 JSON
    """
    data = json.loads(raw)
    if not isinstance(data, dict):
        return None
    return data


def time_sync() -> dict[str, Any]:
    return envelope(Action.TIME_SYNC, {"clientTime": precise_time_str()})


def heartbeat() -> dict[str, Any]:
    return envelope(Action.HEARTBEAT)


def create_workflow(workflow_id: str, title: str, description: str = "") -> dict[str, Any]:
    return envelope(
        Action.CREATE_WORKFLOW,
        {
            "workflowId": workflow_id,
            "title": title,
            "description": description,
        },
    )


def log_entry(
    workflow_id: str,
    message: str,
    body: Any,
    body_type: LogBodyType | str = LogBodyType.OBJECT,
    order: int = -1,
    origin: str = "client",
) -> dict[str, Any]:
    """构造日志条目，body 必须可被 JSON 序列化"""
    return envelope(
        Action.LOG,
        {
            "workflowId": workflow_id,
            "message": message,
            "body": body,
            "bodyType": LogBodyType(body_type).value,
            "timestamp": now_iso(),
            "clientTime": precise_time_str(),
            "order": order,
            "origin": origin,
        },
    )


def end_workflow(workflow_id: str, order: int = -1, origin: str = "client") -> dict[str, Any]:
    return envelope(
        Action.END_WORKFLOW,
        {
            "workflowId": workflow_id,
            "timestamp": now_iso(),
            "clientTime": precise_time_str(),
            "order": order,
            "origin": origin,
        },
    )
