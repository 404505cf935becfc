"""
指数退避测试
"""

from smartlogs.core.backoff import ExponentialBackoff


class TestExponentialBackoff:
    """指数退避测试"""

    def test_sequence_without_jitter(self):
        """无抖动时按倍数增长并受上限限制"""
        backoff = ExponentialBackoff(initial=1.0, maximum=30.0, multiplier=2.0, jitter=0)

        delays = [backoff.next_backoff() for _ in range(7)]

        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
        assert backoff.attempt == 7

    def test_jitter_bounds(self):
        """抖动不超过 10%"""
        for _ in range(50):
            backoff = ExponentialBackoff(initial=10.0, maximum=100.0, jitter=0.1)
            delay = backoff.next_backoff()
            assert 9.0 <= delay <= 11.0

    def test_never_exceeds_maximum(self):
        """带抖动也不超过上限"""
        backoff = ExponentialBackoff(initial=30.0, maximum=30.0, jitter=0.1)
        for _ in range(20):
            assert backoff.next_backoff() <= 30.0

    def test_reset(self):
        """重置"""
        backoff = ExponentialBackoff(initial=1.0, jitter=0)
        backoff.next_backoff()
        backoff.next_backoff()

        backoff.reset()

        assert backoff.attempt == 0
        assert backoff.current == 1.0
        assert backoff.next_backoff() == 1.0
