"""
工具模块
"""

from smartlogs.utils.time import now_iso, precise_time, precise_time_str

__all__ = [
    "now_iso",
    "precise_time",
    "precise_time_str",
]
