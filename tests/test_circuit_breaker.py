"""
Tests for the backend circuit breaker.

Tests cover:
1. State transitions (CLOSED -> OPEN -> HALF_OPEN -> CLOSED)
2. Critical policy errors opening the circuit on first sight
3. Monitoring window and manual reset
4. Policy error statistics and the fallback signal
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from valorwell.core.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
from valorwell.core.error_classification import ErrorType


async def ok():
    return "ok"


class TestCircuitState:
    """Tests for CircuitState enum."""

    def test_circuit_states_exist(self):
        assert CircuitState.CLOSED.value == "closed"
        assert CircuitState.OPEN.value == "open"
        assert CircuitState.HALF_OPEN.value == "half_open"

    def test_state_count(self):
        assert len(CircuitState) == 3


class TestInitialization:
    def test_defaults(self):
        cb = CircuitBreaker(name="backend")

        assert cb.failure_threshold == 5
        assert cb.reset_timeout == 30.0
        assert cb.monitoring_period == 60.0
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_instances_are_independent(self):
        a = CircuitBreaker(name="a")
        b = CircuitBreaker(name="b")
        a._failure_count = 3

        assert b.failure_count == 0


class TestStateTransitions:
    @pytest.mark.asyncio
    async def test_success_passes_result_through(self, breaker):
        assert await breaker.execute(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_stays_closed_below_threshold(self, breaker, failing):
        for _ in range(4):
            with pytest.raises(Exception, match="Network request failed"):
                await breaker.execute(failing("Network request failed"))

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 4

    @pytest.mark.asyncio
    async def test_opens_at_threshold_and_rejects_without_calling(self, breaker, failing, clock):
        """3 failures, then 2 more inside the window: OPEN at the 5th."""
        for _ in range(3):
            with pytest.raises(Exception):
                await breaker.execute(failing("Network request failed"))
        clock.advance(10)
        for _ in range(2):
            with pytest.raises(Exception):
                await breaker.execute(failing("Network request failed"))

        assert breaker.state == CircuitState.OPEN

        clock.advance(10)
        operation = AsyncMock(return_value="never")
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(operation)

        operation.assert_not_called()
        assert exc_info.value.retry_after_seconds == pytest.approx(20.0)
        assert exc_info.value.last_error_type == ErrorType.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self, breaker, failing, clock):
        for _ in range(5):
            with pytest.raises(Exception):
                await breaker.execute(failing("connection reset"))
        clock.advance(30)

        assert await breaker.execute(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, failing, clock):
        for _ in range(5):
            with pytest.raises(Exception):
                await breaker.execute(failing("connection reset"))
        clock.advance(31)

        with pytest.raises(Exception, match="connection reset"):
            await breaker.execute(failing("connection reset"))

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.execute(ok)

    @pytest.mark.asyncio
    async def test_half_open_admits_a_single_trial(self, breaker, failing, clock):
        for _ in range(5):
            with pytest.raises(Exception):
                await breaker.execute(failing("connection reset"))
        clock.advance(30)

        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "slow"

        trial = asyncio.ensure_future(breaker.execute(slow))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitOpenError):
            await breaker.execute(ok)

        release.set()
        assert await trial == "slow"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_trial_is_released(self, breaker, failing, clock):
        for _ in range(5):
            with pytest.raises(Exception):
                await breaker.execute(failing("connection reset"))
        clock.advance(30)

        async def cancelled():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await breaker.execute(cancelled)

        assert await breaker.execute(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED


class TestPolicyErrors:
    @pytest.mark.asyncio
    async def test_infinite_recursion_opens_immediately(self, breaker, failing):
        with pytest.raises(Exception):
            await breaker.execute(failing("infinite recursion detected in policy for relation 'clinicians'"))

        assert breaker.state == CircuitState.OPEN
        assert breaker.failure_count >= breaker.failure_threshold
        assert breaker.get_policy_error_stats().has_critical_errors is True
        assert breaker.should_use_policy_fallback() is True

    @pytest.mark.asyncio
    async def test_circular_dependency_opens_regardless_of_prior_count(self, breaker, failing):
        with pytest.raises(Exception):
            await breaker.execute(failing("Network request failed"))
        with pytest.raises(Exception):
            await breaker.execute(failing("circular dependency in policy chain"))

        assert breaker.state == CircuitState.OPEN
        assert breaker.get_state().last_error_type == ErrorType.POLICY_CIRCULAR_DEPENDENCY

    @pytest.mark.asyncio
    async def test_evaluation_errors_count_toward_threshold(self, breaker, failing):
        for _ in range(3):
            with pytest.raises(Exception):
                await breaker.execute(failing("policy evaluation failed"))

        stats = breaker.get_policy_error_stats()
        assert breaker.state == CircuitState.CLOSED
        assert stats.total_policy_errors == 3
        assert stats.recent_policy_errors == 3
        assert stats.errors_by_type == {"policy_evaluation_error": 3}
        assert stats.has_critical_errors is False
        assert breaker.should_use_policy_fallback() is True

    @pytest.mark.asyncio
    async def test_old_policy_errors_are_not_recent(self, breaker, failing, clock):
        for _ in range(3):
            with pytest.raises(Exception):
                await breaker.execute(failing("row level security violation"))
        clock.advance(6 * 60)

        stats = breaker.get_policy_error_stats()
        assert stats.total_policy_errors == 3
        assert stats.recent_policy_errors == 0
        assert breaker.should_use_policy_fallback() is False

    @pytest.mark.asyncio
    async def test_error_history_keeps_last_ten(self, breaker, failing, clock):
        for i in range(12):
            with pytest.raises(Exception):
                await breaker.execute(failing(f"column c{i} does not exist"))
            clock.advance(61)

        history = breaker.get_state().error_history
        assert len(history) == 10
        assert history[-1].message == "column c11 does not exist"


class TestMonitoringWindow:
    @pytest.mark.asyncio
    async def test_failures_outside_window_start_a_new_count(self, breaker, failing, clock):
        for _ in range(4):
            with pytest.raises(Exception):
                await breaker.execute(failing("timeout"))
        clock.advance(61)
        with pytest.raises(Exception):
            await breaker.execute(failing("timeout"))

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_non_retryable_errors_can_be_excluded(self, clock, failing):
        cb = CircuitBreaker("strict", clock=clock, count_non_retryable=False)
        for _ in range(6):
            with pytest.raises(Exception):
                await cb.execute(failing("permission denied for table customers"))

        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_closes_and_clears(self, breaker, failing):
        with pytest.raises(Exception):
            await breaker.execute(failing("infinite recursion"))

        breaker.reset()

        snapshot = breaker.get_state()
        assert snapshot.state == CircuitState.CLOSED
        assert snapshot.failure_count == 0
        assert snapshot.error_history == []
        assert await breaker.execute(ok) == "ok"


class TestListenersAndReporting:
    @pytest.mark.asyncio
    async def test_listener_receives_transitions(self, breaker, failing, clock):
        seen = []
        breaker.add_listener(lambda name, old, new: seen.append((name, old, new)))

        with pytest.raises(Exception):
            await breaker.execute(failing("infinite recursion"))
        clock.advance(30)
        await breaker.execute(ok)

        assert seen == [
            ("test", "closed", "open"),
            ("test", "open", "half_open"),
            ("test", "half_open", "closed"),
        ]

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_calls(self, breaker, failing):
        breaker.add_listener(MagicMock(side_effect=RuntimeError("listener down")))

        with pytest.raises(Exception, match="infinite recursion"):
            await breaker.execute(failing("infinite recursion"))
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_opening_reports_to_error_tracking(self, breaker, failing):
        with patch("valorwell.core.circuit_breaker.capture_message") as mock_capture:
            with pytest.raises(Exception):
                await breaker.execute(failing("infinite recursion"))

        mock_capture.assert_called_once()
        assert mock_capture.call_args.kwargs["context"]["error_type"] == "policy_infinite_recursion"

    def test_snapshot_to_dict(self, breaker):
        data = breaker.get_state().to_dict()

        assert data["name"] == "test"
        assert data["state"] == "closed"
        assert data["is_open"] is False
        assert data["last_error_type"] is None
