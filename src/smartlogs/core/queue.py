"""
待发送消息队列

严格 FIFO，只保存已序列化的字符串。
只能由事件循环线程访问，由 ConnectionController 保证。
"""

from collections import deque


class OutboundQueue:
    """待发送消息队列"""

    def __init__(self):
        self._messages: deque[str] = deque()
        self._total_enqueued = 0

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def is_empty(self) -> bool:
        return not self._messages

    @property
    def total_enqueued(self) -> int:
        return self._total_enqueued

    def append(self, payload: str) -> None:
        """追加到队尾"""
        self._messages.append(payload)
        self._total_enqueued += 1

    def peek(self) -> str | None:
        """查看最早的消息"""
        if not self._messages:
            return None
        return self._messages[0]

    def pop(self) -> str | None:
        """移除并返回最早的消息"""
        if not self._messages:
            return None
        return self._messages.popleft()

    def clear(self) -> int:
        """清空队列，返回丢弃的数量"""
        count = len(self._messages)
        self._messages.clear()
        return count
