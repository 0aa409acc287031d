from typing import Optional

from agentflow.domain.errors import is_retryable_error


class RetryPolicy:
    """Exponential backoff: the n-th retry waits 2 ** n * base_delay_ms, capped at max_delay_ms"""

    def __init__(self, base_delay_ms: int = 1000, max_delay_ms: Optional[int] = None):
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    def backoff_delay(self, retry_number: int) -> float:
        """Delay in seconds before retry number `retry_number` (1-based)"""

        delay_ms = (2 ** retry_number) * self.base_delay_ms
        if self.max_delay_ms is not None:
            delay_ms = min(delay_ms, self.max_delay_ms)
        return delay_ms / 1000

    def should_retry(self, error: Optional[BaseException], retry_count: int, max_retries: int) -> bool:
        """Whether another attempt follows `retry_count` retries already made"""
        return error is not None and retry_count < max_retries and is_retryable_error(error)
