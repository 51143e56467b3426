"""Retry policy with exponential backoff and optional jitter.

The offline replay adapter keeps its retry state on the queued action itself
(so a retry count survives process restarts); this module only owns the
policy: how many retries, which errors qualify, and how long to wait.

Usage:
    config = RetryConfig(max_retries=3, base_delay=1.0, max_delay=10.0, jitter=False)
    config.calculate_delay(0)  # 1.0 -> wait before retry #1
    config.calculate_delay(3)  # 8.0
    config.calculate_delay(5)  # 10.0 (capped)
"""

import random
from dataclasses import dataclass, field

from debtflow.exceptions import PersistenceError


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Base delay in seconds before first retry (default: 1.0)
        max_delay: Maximum delay in seconds between retries (default: 60.0)
        backoff_factor: Exponential backoff multiplier (default: 2.0)
        jitter: Whether to add random jitter to delays (default: True)
        jitter_range: Range for jitter as fraction of delay (default: 0.1 = ±10%)
        retryable_exceptions: Tuple of exception types to retry (default: all)

    Examples:
        # Fast retries for transient errors
        RetryConfig(max_retries=5, base_delay=0.5, max_delay=5.0)

        # Retry only persistence failures
        RetryConfig(max_retries=3, retryable_exceptions=(PersistenceError,))
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.1
    retryable_exceptions: tuple[type[Exception], ...] = field(default_factory=lambda: (Exception,))

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be > 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if not 0 <= self.jitter_range <= 1:
            raise ValueError("jitter_range must be between 0 and 1")

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a given retry attempt.

        Args:
            attempt: The retry attempt number (0-indexed)

        Returns:
            Delay in seconds, with exponential backoff and optional jitter
        """
        delay = min(self.base_delay * (self.backoff_factor**attempt), self.max_delay)

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            jitter = random.uniform(-jitter_amount, jitter_amount)
            delay = max(0, delay + jitter)

        return delay

    def is_retryable(self, error: Exception) -> bool:
        """Whether ``error`` qualifies for another attempt."""
        return isinstance(error, self.retryable_exceptions)


# Offline payment replay: 1s, 2s, 4s ... capped at 10s, persistence errors only
OFFLINE_REPLAY_RETRY = RetryConfig(
    max_retries=3,
    base_delay=1.0,
    max_delay=10.0,
    backoff_factor=2.0,
    jitter=False,
    retryable_exceptions=(PersistenceError,),
)
