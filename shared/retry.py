"""
Retry policy and backoff calculation for resilient fetches.
"""

from dataclasses import dataclass, field


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_retries: int = 3,
                 base_delay: float = 1.0):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Linear backoff before retry number ``attempt`` (1-based)."""
    return config.base_delay * attempt


@dataclass
class RetryPolicy:
    """Per-subscription retry counter.

    ``attempt`` counts the retries already scheduled since the last success.
    It is compared against ``config.max_retries`` to decide whether a failed
    fetch gets another attempt.
    """

    config: RetryConfig = field(default_factory=RetryConfig)
    attempt: int = 0

    @property
    def max_attempts(self) -> int:
        """Total attempts allowed: the initial one plus every retry."""
        return self.config.max_retries + 1

    def should_retry(self) -> bool:
        return self.attempt < self.config.max_retries

    def next_delay(self) -> float:
        """Consume one retry and return how long to wait before it."""
        if not self.should_retry():
            raise RuntimeError("Retry budget exhausted")
        self.attempt += 1
        return calculate_delay(self.attempt, self.config)

    def reset(self) -> None:
        self.attempt = 0
