# tests/test_retry.py
import pytest

from coursetutor.config import THROTTLED_HINT
from coursetutor.errors import ThrottledError
from coursetutor.llm.retry import backoff_delay, call_with_throttle_retry, is_throttling_error

from conftest import RecordingSleep, rate_limit_error, server_error


class _StatusError(Exception):

    def __init__(self, status_code):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def _scripted(*outcomes):
    """An async callable that raises or returns each outcome in turn."""
    remaining = list(outcomes)
    calls = []

    async def fn():
        calls.append(1)
        outcome = remaining.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    return fn, calls


class TestThrottlingDetection:

    def test_rate_limit_error(self):
        assert is_throttling_error(rate_limit_error())

    def test_generic_429(self):
        assert is_throttling_error(_StatusError(429))

    def test_server_error_is_not_throttling(self):
        assert not is_throttling_error(server_error())

    def test_plain_exception(self):
        assert not is_throttling_error(RuntimeError("boom"))


class TestBackoffDelay:

    def test_ceiling_doubles_per_attempt(self):
        """With the rng pinned to the upper bound the ceiling is exposed."""
        upper = lambda low, high: high

        assert [backoff_delay(n, 1.0, 30.0, rng=upper) for n in range(1, 6)] == [
            1.0, 2.0, 4.0, 8.0, 16.0
        ]

    def test_ceiling_is_capped(self):
        upper = lambda low, high: high

        assert backoff_delay(10, 1.0, 30.0, rng=upper) == 30.0

    def test_full_jitter_range(self):
        for attempt in range(1, 12):
            delay = backoff_delay(attempt, 1.0, 30.0)
            assert 0.0 <= delay <= min(30.0, 2 ** (attempt - 1))


class TestCallWithThrottleRetry:

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        fn, calls = _scripted("ok")
        sleep = RecordingSleep()

        result = await call_with_throttle_retry(fn, operation="test", max_attempts=3, sleep=sleep)

        assert result == "ok"
        assert len(calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_throttling(self):
        fn, calls = _scripted(rate_limit_error(), rate_limit_error(), rate_limit_error(), "ok")
        sleep = RecordingSleep()

        result = await call_with_throttle_retry(fn, operation="test", max_attempts=8, sleep=sleep)

        assert result == "ok"
        assert len(calls) == 4
        assert len(sleep.delays) == 3
        assert all(0.0 <= d <= 30.0 for d in sleep.delays)

    @pytest.mark.asyncio
    async def test_exhaustion_raises_throttled(self):
        fn, calls = _scripted(*[rate_limit_error() for _ in range(5)])
        sleep = RecordingSleep()

        with pytest.raises(ThrottledError) as exc_info:
            await call_with_throttle_retry(fn, operation="test", max_attempts=5, sleep=sleep)

        assert len(calls) == 5
        # No sleep after the final attempt
        assert len(sleep.delays) == 4
        assert exc_info.value.attempts == 5
        assert str(exc_info.value) == THROTTLED_HINT

    @pytest.mark.asyncio
    async def test_non_throttling_error_is_not_retried(self):
        fn, calls = _scripted(server_error(), "never reached")
        sleep = RecordingSleep()

        with pytest.raises(Exception) as exc_info:
            await call_with_throttle_retry(fn, operation="test", max_attempts=8, sleep=sleep)

        assert not isinstance(exc_info.value, ThrottledError)
        assert len(calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_invalid_attempts(self):
        fn, _ = _scripted("ok")

        with pytest.raises(ValueError):
            await call_with_throttle_retry(fn, operation="test", max_attempts=0)

    @pytest.mark.asyncio
    async def test_throttle_hook_sees_each_backoff(self):
        fn, _ = _scripted(rate_limit_error(), rate_limit_error(), "ok")
        sleep = RecordingSleep()
        seen = []

        await call_with_throttle_retry(
            fn,
            operation="test",
            max_attempts=8,
            sleep=sleep,
            on_throttle=lambda attempt, delay: seen.append((attempt, delay)),
        )

        assert [attempt for attempt, _ in seen] == [1, 2]
        assert [delay for _, delay in seen] == sleep.delays

    @pytest.mark.asyncio
    async def test_throttle_hook_not_called_for_other_errors(self):
        fn, _ = _scripted(server_error())
        seen = []

        with pytest.raises(Exception):
            await call_with_throttle_retry(
                fn,
                operation="test",
                max_attempts=3,
                sleep=RecordingSleep(),
                on_throttle=lambda attempt, delay: seen.append(attempt),
            )

        assert seen == []
