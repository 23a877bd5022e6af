"""Bounded retry with jittered exponential backoff."""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, TypeVar

from replica_scaler.core.errors import DeadlineExceeded, RetryableError, RetryBudgetExceeded
from replica_scaler.core.models import RetryBudget

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deadline:
    """Wall-clock budget for one invocation, measured on a monotonic clock."""

    def __init__(self, seconds: float | None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def from_lambda_context(cls, context, margin_ms: int = 2000) -> "Deadline":
        """Build a deadline from a Lambda context, keeping a margin for reporting."""
        get_remaining = getattr(context, "get_remaining_time_in_millis", None)
        if get_remaining is None:
            return cls(None)
        remaining_ms = max(0, get_remaining() - margin_ms)
        return cls(remaining_ms / 1000.0)

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return self._expires_at - self._clock()

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


def backoff_delay(attempt: int, budget: RetryBudget) -> float:
    """Full-jitter delay before retry number ``attempt`` (0-based)."""
    ceiling = min(budget.max_delay, budget.base_delay * (2 ** attempt))
    return random.uniform(0, ceiling)


def call_with_retry(
    operation: str,
    fn: Callable[[], T],
    budget: RetryBudget,
    deadline: Deadline | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds, retrying only RetryableError.

    Any other exception propagates on the first occurrence.
    """
    deadline = deadline or Deadline(None)
    last_error: Exception | None = None

    for attempt in range(budget.max_attempts):
        if deadline.expired():
            raise DeadlineExceeded(operation, last_error)
        try:
            return fn()
        except RetryableError as exc:
            last_error = exc
            if attempt + 1 >= budget.max_attempts:
                break
            delay = backoff_delay(attempt, budget)
            remaining = deadline.remaining()
            if remaining is not None and delay >= remaining:
                raise DeadlineExceeded(operation, exc) from exc
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                operation,
                attempt + 1,
                budget.max_attempts,
                exc,
                delay,
            )
            sleep(delay)

    raise RetryBudgetExceeded(operation, budget.max_attempts, last_error) from last_error
