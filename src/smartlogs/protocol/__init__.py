"""
线上协议
"""

from smartlogs.protocol import envelopes

__all__ = ["envelopes"]
