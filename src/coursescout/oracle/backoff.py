"""
Backoff Module - Exponential retry delays for transient backend failures.
=========================================================================

``delay(i) = base * 2**i`` for retry ``i = 0..max_retries-1``. The policy is
a plain value object so it can be tested without sleeping, and it doubles as
a tenacity wait strategy.
"""

from dataclasses import dataclass

from tenacity import RetryCallState


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff policy.

    Attributes:
        base_delay: Delay before the first retry, in seconds
        max_retries: Retries after the first attempt
    """

    base_delay: float = 1.0
    max_retries: int = 3

    def __post_init__(self) -> None:
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first one."""
        return self.max_retries + 1

    def delay(self, retry_index: int) -> float:
        """Seconds to wait before retry number ``retry_index`` (0-based)."""
        if retry_index < 0:
            raise ValueError(f"retry_index must be >= 0, got {retry_index}")
        return self.base_delay * (2**retry_index)

    def __call__(self, retry_state: RetryCallState) -> float:
        # tenacity numbers attempts from 1; the wait follows a failed attempt
        return self.delay(retry_state.attempt_number - 1)
