"""
JSON 工具

使用 ujson 进行序列化，失败统一抛出 SerializationError。
"""

from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import ujson

from smartlogs.domain.errors import SerializationError


def dumps(obj: Any, **kwargs) -> str:
    """安全的 JSON 序列化"""
    try:
        return ujson.dumps(
            obj,
            default=_default_encoder,
            ensure_ascii=False,
            escape_forward_slashes=False,
            **kwargs,
        )
    except (TypeError, ValueError, OverflowError) as e:
        obj_type = type(obj).__name__
        raise SerializationError(
            f"无法序列化类型 {obj_type}: {e}",
            details={"type": obj_type},
        ) from e


def loads(s: str | bytes) -> Any:
    """JSON 反序列化"""
    try:
        return ujson.loads(s)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"无法反序列化 JSON: {e}") from e


def _default_encoder(obj: Any) -> Any:
    """默认编码器"""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
