"""Shared helpers: atomic filesystem writes, cancellation and bounded retries."""

from boxsafe.utils.concurrency import CancellationToken, await_unless_cancelled
from boxsafe.utils.fs import atomic_write
from boxsafe.utils.retry import RetryPolicy, compute_backoff_delay, run_with_retries

__all__ = [
    "CancellationToken",
    "RetryPolicy",
    "atomic_write",
    "await_unless_cancelled",
    "compute_backoff_delay",
    "run_with_retries",
]
