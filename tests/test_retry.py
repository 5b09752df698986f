"""
Tests for caller-side retry with exponential backoff.
"""

from unittest.mock import AsyncMock, patch

import pytest

from valorwell.core.circuit_breaker import CircuitOpenError
from valorwell.core.retry import backoff_delay, default_should_retry, retry_with_backoff, with_retry


@pytest.fixture
def no_sleep():
    with patch("valorwell.core.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


class TestBackoffDelay:
    def test_doubles_up_to_max(self):
        assert backoff_delay(1, 1.0, 4.0) == 1.0
        assert backoff_delay(2, 1.0, 4.0) == 2.0
        assert backoff_delay(3, 1.0, 4.0) == 4.0
        assert backoff_delay(4, 1.0, 4.0) == 4.0


class TestDefaultShouldRetry:
    def test_transient_errors_retry(self):
        assert default_should_retry(Exception("Failed to fetch"), 1) is True

    def test_policy_errors_do_not_retry(self):
        assert default_should_retry(Exception("infinite recursion detected in policy"), 1) is False

    def test_open_circuit_does_not_retry(self):
        assert default_should_retry(CircuitOpenError("backend", 12.0), 1) is False


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_returns_first_success(self, no_sleep):
        operation = AsyncMock(return_value="ok")

        assert await retry_with_backoff(operation) == "ok"
        operation.assert_awaited_once()
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self, no_sleep):
        operation = AsyncMock(side_effect=[Exception("network error"), Exception("timeout"), "ok"])

        assert await retry_with_backoff(operation) == "ok"
        assert operation.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, no_sleep):
        operation = AsyncMock(side_effect=Exception("network error"))

        with pytest.raises(Exception, match="network error"):
            await retry_with_backoff(operation, max_attempts=3)
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self, no_sleep):
        operation = AsyncMock(side_effect=Exception("circular dependency detected"))

        with pytest.raises(Exception, match="circular dependency"):
            await retry_with_backoff(operation)
        operation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_custom_should_retry(self, no_sleep):
        operation = AsyncMock(side_effect=[ValueError("bad"), "ok"])

        result = await retry_with_backoff(operation, should_retry=lambda e, attempt: isinstance(e, ValueError))
        assert result == "ok"


class TestWithRetryDecorator:
    @pytest.mark.asyncio
    async def test_decorated_function_is_retried(self, no_sleep):
        calls = []

        @with_retry(max_attempts=2, initial_delay=0.5)
        async def load(user_id):
            calls.append(user_id)
            if len(calls) == 1:
                raise Exception("connection refused")
            return {"id": user_id}

        assert await load("u1") == {"id": "u1"}
        assert calls == ["u1", "u1"]
        no_sleep.assert_awaited_once_with(0.5)
        assert load.__name__ == "load"
