"""Unit tests for bounded exponential backoff and the retry runner."""

from __future__ import annotations

import pytest

from boxsafe.utils.retry import RetryPolicy, compute_backoff_delay, run_with_retries


class _Flaky:
    def __init__(self, failures: int, error: type[Exception] = ConnectionError) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"attempt {self.calls} failed")
        return "done"


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def test_backoff_grows_and_is_capped() -> None:
    policy = RetryPolicy(initial_delay_seconds=0.5, multiplier=3.0, max_delay_seconds=2.0)

    delays = [compute_backoff_delay(retry_number=n, policy=policy) for n in (1, 2, 3)]

    assert delays == [0.5, 1.5, 2.0]


def test_jitter_stays_within_bounds() -> None:
    policy = RetryPolicy(initial_delay_seconds=1.0, max_delay_seconds=1.0, jitter_ratio=0.5)

    low = compute_backoff_delay(retry_number=1, policy=policy, random_fn=lambda: 0.0)
    high = compute_backoff_delay(retry_number=1, policy=policy, random_fn=lambda: 1.0)

    assert low == pytest.approx(0.5)
    assert high == pytest.approx(1.0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"initial_delay_seconds": -1.0},
        {"multiplier": 0.5},
        {"initial_delay_seconds": 6.0},
        {"jitter_ratio": 1.5},
    ],
)
def test_invalid_policies_are_rejected(kwargs: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)  # type: ignore[arg-type]


async def test_retries_until_success_and_reports_each_retry() -> None:
    operation = _Flaky(failures=2)
    sleeps = _Sleeps()
    seen: list[int] = []

    result = await run_with_retries(
        operation,
        policy=RetryPolicy(max_attempts=3, initial_delay_seconds=0.1),
        sleep=sleeps,
        on_retry=lambda attempt, exc, delay: seen.append(attempt),
    )

    assert result == "done"
    assert operation.calls == 3
    assert sleeps.delays == [0.1, 0.2]
    assert seen == [1, 2]


async def test_last_error_is_raised_when_attempts_run_out() -> None:
    operation = _Flaky(failures=5)

    with pytest.raises(ConnectionError, match="attempt 2 failed"):
        await run_with_retries(operation, policy=RetryPolicy(max_attempts=2), sleep=_Sleeps())


async def test_non_retryable_errors_fail_immediately() -> None:
    operation = _Flaky(failures=1, error=PermissionError)
    sleeps = _Sleeps()

    with pytest.raises(PermissionError):
        await run_with_retries(
            operation,
            retryable=lambda exc: isinstance(exc, ConnectionError),
            sleep=sleeps,
        )

    assert operation.calls == 1
    assert sleeps.delays == []
