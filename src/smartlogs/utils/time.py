"""
时间工具

时间同步和日志条目使用的时钟源。
"""

import time
from datetime import UTC, datetime


def precise_time() -> float:
    """高精度时间戳（秒，纳秒精度来源）"""
    return time.time_ns() / 1_000_000_000


def precise_time_str() -> str:
    """高精度时间戳字符串，用于 clientTime 字段"""
    return repr(precise_time())


def now_iso() -> str:
    """当前时间 ISO-8601 格式（UTC）"""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")

