"""
boxsafe — bounded retry helper

File: src/boxsafe/utils/retry.py

Purpose
- Retry any async fallible operation with bounded exponential backoff.

Functional requirements
- ``max_attempts`` counts the first call; ``max_attempts=3`` means at most two retries.
- Delay before retry N (1-based) is ``initial_delay_seconds * multiplier ** (N - 1)``,
  capped at ``max_delay_seconds`` and optionally jittered.
- Cancellation is never retried.
"""

from __future__ import annotations

import asyncio
import random as random_module
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeAlias, TypeVar

import structlog

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]
RandomFn: TypeAlias = Callable[[], float]
RetryCallback: TypeAlias = Callable[[int, BaseException, float], None]
RetryPredicate: TypeAlias = Callable[[BaseException], bool]

_T = TypeVar("_T")

_logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff policy."""

    max_attempts: int = 3
    initial_delay_seconds: float = 0.3
    multiplier: float = 2.0
    max_delay_seconds: float = 5.0
    jitter_ratio: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.max_delay_seconds < 0:
            raise ValueError("max_delay_seconds must be >= 0")
        if self.initial_delay_seconds > self.max_delay_seconds:
            raise ValueError("initial_delay_seconds must be <= max_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")


def compute_backoff_delay(
    *,
    retry_number: int,
    policy: RetryPolicy,
    random_fn: RandomFn = random_module.random,
) -> float:
    """Return bounded exponential backoff delay for retry attempt N (1-based)."""

    if retry_number <= 0:
        raise ValueError("retry_number must be > 0")

    base_delay = policy.initial_delay_seconds * (policy.multiplier ** (retry_number - 1))
    bounded_delay = min(base_delay, policy.max_delay_seconds)

    if policy.jitter_ratio == 0.0:
        return bounded_delay

    random_value = random_fn()
    if not (0.0 <= random_value <= 1.0):
        raise ValueError("random_fn must return values in [0.0, 1.0]")

    max_jitter = bounded_delay * policy.jitter_ratio
    jitter = ((random_value * 2.0) - 1.0) * max_jitter
    return max(0.0, min(policy.max_delay_seconds, bounded_delay + jitter))


async def run_with_retries(
    operation: Callable[[], Awaitable[_T]],
    *,
    policy: RetryPolicy | None = None,
    retryable: RetryPredicate | None = None,
    sleep: SleepFn = asyncio.sleep,
    random_fn: RandomFn = random_module.random,
    on_retry: RetryCallback | None = None,
    operation_name: str = "operation",
) -> _T:
    """Run ``operation`` until it succeeds or the attempt budget is spent.

    The last exception is re-raised unchanged once attempts run out or ``retryable``
    rejects it.
    """

    effective = policy if policy is not None else RetryPolicy()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if retryable is not None and not retryable(exc):
                raise
            if attempt >= effective.max_attempts:
                _logger.warning(
                    "retry_exhausted",
                    operation=operation_name,
                    attempts=attempt,
                    error=str(exc),
                )
                raise

            delay_seconds = compute_backoff_delay(
                retry_number=attempt,
                policy=effective,
                random_fn=random_fn,
            )
            _logger.info(
                "retry_scheduled",
                operation=operation_name,
                attempt=attempt,
                delay_seconds=delay_seconds,
                error=str(exc),
            )
            if on_retry is not None:
                on_retry(attempt, exc, delay_seconds)
            await sleep(delay_seconds)


__all__ = [
    "RandomFn",
    "RetryCallback",
    "RetryPolicy",
    "RetryPredicate",
    "SleepFn",
    "compute_backoff_delay",
    "run_with_retries",
]
