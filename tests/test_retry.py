"""Tests for bounded retry."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from sgreconciler.retry import RetryExhausted, RetryPolicy, ordinal, retry

NO_DELAY = RetryPolicy(min_delay_seconds=0, max_delay_seconds=0)


class Flaky:
    """Operation that fails a fixed number of times before succeeding."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or ConnectionError("flaky")
        self.attempts: list[int] = []

    async def __call__(self, attempt: int) -> str:
        self.attempts.append(attempt)
        if len(self.attempts) <= self.failures:
            raise self.error
        return "ok"


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self) -> None:
        """Test default bounds are four attempts from one second."""
        policy = RetryPolicy()

        assert policy.max_attempts == 4
        assert policy.min_delay_seconds == 1.0

    def test_delay_never_below_minimum(self) -> None:
        """Test every delay is at least the minimum."""
        policy = RetryPolicy()

        for attempt in range(1, 10):
            assert policy.delay_after(attempt) >= 1.0

    def test_delay_grows_and_caps(self) -> None:
        """Test exponential growth capped at the maximum."""
        policy = RetryPolicy(min_delay_seconds=1, factor=2, max_delay_seconds=5, jitter=0)

        assert [policy.delay_after(n) for n in range(1, 6)] == [1, 2, 4, 5, 5]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"min_delay_seconds": -1},
            {"factor": 0.5},
            {"min_delay_seconds": 10, "max_delay_seconds": 1},
        ],
    )
    def test_invalid_bounds(self, kwargs: dict[str, float]) -> None:
        """Test nonsensical bounds are rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)  # type: ignore[arg-type]


class TestRetry:
    """Tests for the retry loop."""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self) -> None:
        """Test a successful operation runs once."""
        operation = Flaky(failures=0)

        assert await retry(operation, NO_DELAY, operation_name="op") == "ok"
        assert operation.attempts == [1]

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self) -> None:
        """Test attempts continue until success."""
        operation = Flaky(failures=2)

        assert await retry(operation, NO_DELAY, operation_name="op") == "ok"
        assert operation.attempts == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_exhaustion(self) -> None:
        """Test exactly max_attempts attempts before giving up."""
        error = ConnectionError("down")
        operation = Flaky(failures=100, error=error)

        with pytest.raises(RetryExhausted) as exc_info:
            await retry(operation, NO_DELAY, operation_name="Create thing")

        assert operation.attempts == [1, 2, 3, 4]
        assert exc_info.value.attempts == 4
        assert exc_info.value.last_error is error
        assert exc_info.value.__cause__ is error
        assert "Create thing" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_default_policy_waits_between_attempts(self) -> None:
        """Test waits of at least one second separate consecutive attempts."""
        operation = Flaky(failures=100)

        with patch("sgreconciler.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(RetryExhausted):
                await retry(operation, RetryPolicy(), operation_name="op")

        assert len(operation.attempts) == 4
        # No wait after the final attempt
        assert sleep.await_count == 3
        assert all(call.args[0] >= 1.0 for call in sleep.await_args_list)

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates(self) -> None:
        """Test errors outside retry_on are raised immediately."""
        operation = Flaky(failures=100, error=KeyError("nope"))

        with pytest.raises(KeyError):
            await retry(
                operation, NO_DELAY, operation_name="op", retry_on=(ConnectionError,)
            )

        assert operation.attempts == [1]


class TestOrdinal:
    """Tests for attempt ordinals."""

    def test_words(self) -> None:
        assert [ordinal(n) for n in range(1, 5)] == ["First", "Second", "Third", "Fourth"]

    def test_beyond_words(self) -> None:
        assert ordinal(11) == "#11"
