"""
Unit tests for retry policy and backoff calculation.
"""

import pytest

from shared.retry import RetryConfig, RetryPolicy, calculate_delay


class TestCalculateDelay:
    """Test cases for calculate_delay."""

    def test_linear_backoff(self):
        config = RetryConfig(base_delay=1.0)
        assert [calculate_delay(n, config) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]

    def test_grows_without_cap(self):
        config = RetryConfig(base_delay=30.0)
        assert calculate_delay(10, config) == 300.0

    def test_zero_base_delay(self):
        assert calculate_delay(4, RetryConfig(base_delay=0.0)) == 0.0


class TestRetryPolicy:
    """Test cases for RetryPolicy."""

    def test_budget(self):
        policy = RetryPolicy(RetryConfig(max_retries=3))
        assert policy.max_attempts == 4

        delays = []
        while policy.should_retry():
            delays.append(policy.next_delay())

        assert delays == [1.0, 2.0, 3.0]
        assert policy.attempt == 3
        with pytest.raises(RuntimeError):
            policy.next_delay()

    def test_delays_non_decreasing(self):
        policy = RetryPolicy(RetryConfig(max_retries=10, base_delay=0.25))
        delays = [policy.next_delay() for _ in range(10)]
        assert delays == sorted(delays)

    def test_reset(self):
        policy = RetryPolicy(RetryConfig(max_retries=1))
        policy.next_delay()
        assert not policy.should_retry()

        policy.reset()
        assert policy.attempt == 0
        assert policy.should_retry()

    def test_zero_retries(self):
        policy = RetryPolicy(RetryConfig(max_retries=0))
        assert policy.max_attempts == 1
        assert not policy.should_retry()

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            RetryConfig(max_retries=-1)
        with pytest.raises(ValueError):
            RetryConfig(base_delay=-0.1)
