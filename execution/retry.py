# PATH: execution/retry.py
"""
Retry with exponential backoff.

RETRY CONTRACT:
- only errors with retryable=True (TransportError family) re-enter the loop;
  anything else propagates immediately
- attempt n (1-based) that fails is followed by a delay of
  min(base_delay_s * multiplier**(n-1), max_delay_s)
- after max_attempts failed attempts, RetryExhaustedError is raised with the
  last underlying error attached; no sleep follows the final attempt
"""

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from core.constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_RETRY_DELAY_S,
    DEFAULT_RETRY_DELAY_S,
)
from core.exceptions import FlashArbError, RetryExhaustedError, is_retryable

T = TypeVar("T")

RetryHook = Callable[[int, FlashArbError, float], Any]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay_s: float = DEFAULT_RETRY_DELAY_S
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_delay_s: float = DEFAULT_MAX_RETRY_DELAY_S

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("Retry delays must be non-negative")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (1-based)."""
        return min(self.base_delay_s * self.multiplier ** (attempt - 1), self.max_delay_s)


async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]],
    on_retry: Optional[RetryHook] = None,
) -> T:
    """
    Run operation(attempt) until it succeeds, fails fatally, or the policy
    is exhausted. on_retry(attempt, error, delay) runs before each backoff
    sleep and may be a coroutine function.
    """
    last_error: Optional[FlashArbError] = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation(attempt)
        except FlashArbError as e:
            if not is_retryable(e):
                raise
            last_error = e
            if attempt == policy.max_attempts:
                break
            delay = policy.delay_for(attempt)
            if on_retry is not None:
                hook_result = on_retry(attempt, e, delay)
                if inspect.isawaitable(hook_result):
                    await hook_result
            await sleep(delay)
    raise RetryExhaustedError(last_error, policy.max_attempts)
