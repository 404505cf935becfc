"""
指数退避计算器

仅用于握手失败后的重新连接，发送失败触发的重连不退避。
"""

import random


class ExponentialBackoff:
    """指数退避计算器"""

    def __init__(
        self,
        initial: float = 1.0,
        maximum: float = 30.0,
        multiplier: float = 2.0,
        jitter: float = 0.1,
    ):
        self._initial = initial
        self._maximum = maximum
        self._multiplier = multiplier
        self._jitter = jitter
        self._current = initial
        self._attempt = 0

    def next_backoff(self) -> float:
        """获取下一个退避时间"""
        backoff = self._current

        # 添加抖动
        if self._jitter > 0:
            jitter_amount = backoff * self._jitter
            backoff += random.uniform(-jitter_amount, jitter_amount)

        # 更新状态
        self._current = min(self._current * self._multiplier, self._maximum)
        self._attempt += 1

        return max(0.0, min(backoff, self._maximum))

    def reset(self) -> None:
        """重置退避"""
        self._current = self._initial
        self._attempt = 0

    @property
    def attempt(self) -> int:
        """当前尝试次数"""
        return self._attempt

    @property
    def current(self) -> float:
        """当前退避时间"""
        return self._current
