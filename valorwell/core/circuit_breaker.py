"""
Circuit breaker for calls to the hosted backend.

Every data service call goes through CircuitBreaker.execute(). Failures are
classified (see error_classification); critical policy failures such as
infinite recursion in a row-level-security policy open the circuit on first
sight, everything else opens it once failure_threshold failures pile up
within the monitoring period.

The breaker is constructed at application start and injected where needed;
there is no module-level instance.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from threading import Lock
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Deque, Dict, List, Optional, TypeVar

from valorwell.core.error_classification import (
    ErrorInfo,
    ErrorType,
    classify_error,
    is_critical_policy_error,
    is_policy_error,
)
from valorwell.core.errors import capture_message

if TYPE_CHECKING:
    from valorwell.core.circuit_breaker_monitor import CircuitBreakerMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (name, old_state, new_state) - return value is ignored
StateChangeCallback = Callable[[str, str, str], Any]

ERROR_HISTORY_SIZE = 10
RECENT_POLICY_WINDOW = timedelta(minutes=5)
POLICY_FALLBACK_RECENT_THRESHOLD = 2


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CircuitState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Probing with a single trial call


class CircuitOpenError(Exception):
    """Raised instead of calling the backend while the circuit is open."""

    def __init__(self, name: str, retry_after_seconds: float, last_error_type: Optional[ErrorType] = None):
        self.name = name
        self.retry_after_seconds = retry_after_seconds
        self.last_error_type = last_error_type
        super().__init__(
            f"Circuit breaker '{name}' is open. Service temporarily unavailable, "
            f"retry in {retry_after_seconds:.0f}s."
        )


@dataclass(frozen=True)
class PolicyErrorStats:
    total_policy_errors: int
    recent_policy_errors: int
    errors_by_type: Dict[str, int]
    last_policy_error: Optional[ErrorInfo]
    has_critical_errors: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_policy_errors": self.total_policy_errors,
            "recent_policy_errors": self.recent_policy_errors,
            "errors_by_type": dict(self.errors_by_type),
            "last_policy_error": self.last_policy_error.to_dict() if self.last_policy_error else None,
            "has_critical_errors": self.has_critical_errors,
        }


@dataclass(frozen=True)
class CircuitBreakerSnapshot:
    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    request_count: int
    last_failure_time: Optional[datetime]
    error_history: List[ErrorInfo]
    last_error_type: Optional[ErrorType]
    policy_error_count: int
    has_critical_policy_errors: bool

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "is_open": self.is_open,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "request_count": self.request_count,
            "last_failure_time": self.last_failure_time.isoformat() if self.last_failure_time else None,
            "error_history": [e.to_dict() for e in self.error_history],
            "last_error_type": self.last_error_type.value if self.last_error_type else None,
            "policy_error_count": self.policy_error_count,
            "has_critical_policy_errors": self.has_critical_policy_errors,
        }


@dataclass
class CircuitBreaker:
    name: str
    failure_threshold: int = 5
    reset_timeout: float = 30.0  # seconds
    monitoring_period: float = 60.0  # seconds
    count_non_retryable: bool = True
    clock: Callable[[], datetime] = _utc_now
    monitor: Optional["CircuitBreakerMonitor"] = None

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _request_count: int = field(default=0, init=False)
    _last_failure_time: Optional[datetime] = field(default=None, init=False)
    _trial_in_flight: bool = field(default=False, init=False)
    _error_history: Deque[ErrorInfo] = field(default_factory=lambda: deque(maxlen=ERROR_HISTORY_SIZE), init=False)
    _listeners: List[StateChangeCallback] = field(default_factory=list, init=False)
    _lock: Lock = field(default_factory=Lock, init=False)

    @property
    def state(self) -> CircuitState:
        """Current state without triggering the OPEN -> HALF_OPEN check."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def add_listener(self, callback: StateChangeCallback) -> None:
        self._listeners.append(callback)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run operation under breaker protection.

        Raises CircuitOpenError without calling operation while the circuit is
        open. Any exception raised by operation is classified, recorded and
        re-raised unchanged. The breaker never retries.
        """
        self._before_call()
        try:
            result = await operation()
        except asyncio.CancelledError:
            self._release_trial()
            raise
        except Exception as exc:
            self._record_failure(exc)
            raise
        self._record_success()
        return result

    def _before_call(self) -> None:
        transitions = []
        with self._lock:
            now = self.clock()
            if self._state == CircuitState.OPEN:
                elapsed = self._seconds_since_failure(now)
                if elapsed < self.reset_timeout:
                    raise CircuitOpenError(self.name, self.reset_timeout - elapsed, self._last_error_type())
                transitions.append(self._transition(CircuitState.HALF_OPEN))
                self._trial_in_flight = True
            elif self._state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(self.name, self.reset_timeout, self._last_error_type())
                self._trial_in_flight = True
            self._request_count += 1
        self._notify(transitions)

    def _seconds_since_failure(self, now: datetime) -> float:
        if self._last_failure_time is None:
            return float("inf")
        return (now - self._last_failure_time).total_seconds()

    def _release_trial(self) -> None:
        with self._lock:
            self._trial_in_flight = False

    def _record_success(self) -> None:
        transitions = []
        with self._lock:
            self._success_count += 1
            self._failure_count = 0
            self._trial_in_flight = False
            if self._state == CircuitState.HALF_OPEN:
                transitions.append(self._transition(CircuitState.CLOSED))
            request_count = self._request_count
        if self.monitor:
            self.monitor.log_success(request_count=request_count)
        self._notify(transitions)

    def _record_failure(self, exc: BaseException) -> None:
        info = classify_error(exc)
        transitions = []
        with self._lock:
            now = self.clock()
            info = replace(info, timestamp=now)
            self._error_history.append(info)
            self._trial_in_flight = False

            if self._state == CircuitState.CLOSED and self._seconds_since_failure(now) > self.monitoring_period:
                # Previous failures fell out of the monitoring window
                self._failure_count = 0
            self._last_failure_time = now

            if is_critical_policy_error(info.type):
                self._failure_count = max(self._failure_count, self.failure_threshold)
                if self._state != CircuitState.OPEN:
                    transitions.append(self._transition(CircuitState.OPEN))
                logger.error(f"Circuit {self.name}: critical policy error ({info.type.value}), opening circuit")
            elif self._state == CircuitState.HALF_OPEN:
                self._failure_count += 1
                transitions.append(self._transition(CircuitState.OPEN))
            elif self._counts_toward_threshold(info):
                self._failure_count += 1
                if self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                    transitions.append(self._transition(CircuitState.OPEN))
            failure_count = self._failure_count
            request_count = self._request_count

        if self.monitor:
            self.monitor.log_error(
                info.type.value,
                info.message,
                failure_count=failure_count,
                request_count=request_count,
            )
        self._notify(transitions, info)

    def _counts_toward_threshold(self, info: ErrorInfo) -> bool:
        if info.retryable or is_policy_error(info.type):
            return True
        return self.count_non_retryable

    def _transition(self, new_state: CircuitState) -> tuple[CircuitState, CircuitState]:
        """Must be called while holding self._lock."""
        old_state = self._state
        self._state = new_state
        if new_state == CircuitState.OPEN:
            logger.warning(f"Circuit {self.name}: {old_state.name} -> OPEN (failures={self._failure_count})")
        else:
            logger.info(f"Circuit {self.name}: {old_state.name} -> {new_state.name}")
        return old_state, new_state

    def _notify(self, transitions: list, info: Optional[ErrorInfo] = None) -> None:
        for old_state, new_state in transitions:
            if self.monitor:
                self.monitor.log_state_change(
                    old_state.name,
                    new_state.name,
                    failure_count=self._failure_count,
                    request_count=self._request_count,
                )
            if new_state == CircuitState.OPEN:
                capture_message(
                    f"Circuit breaker {self.name} opened",
                    level="warning",
                    context={
                        "circuit": self.name,
                        "previous_state": old_state.value,
                        "failure_count": self._failure_count,
                        "error_type": info.type.value if info else None,
                    },
                    tags={"circuit": self.name},
                )
            for callback in self._listeners:
                try:
                    callback(self.name, old_state.value, new_state.value)
                except Exception as e:
                    logger.error(f"Circuit breaker listener failed: {e}")

    def _last_error_type(self) -> Optional[ErrorType]:
        return self._error_history[-1].type if self._error_history else None

    def get_state(self) -> CircuitBreakerSnapshot:
        with self._lock:
            history = list(self._error_history)
            policy_errors = [e for e in history if is_policy_error(e.type)]
            return CircuitBreakerSnapshot(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                success_count=self._success_count,
                request_count=self._request_count,
                last_failure_time=self._last_failure_time,
                error_history=history,
                last_error_type=self._last_error_type(),
                policy_error_count=len(policy_errors),
                has_critical_policy_errors=any(is_critical_policy_error(e.type) for e in policy_errors),
            )

    def get_policy_error_stats(self) -> PolicyErrorStats:
        with self._lock:
            now = self.clock()
            policy_errors = [e for e in self._error_history if is_policy_error(e.type)]
        recent = [e for e in policy_errors if now - e.timestamp <= RECENT_POLICY_WINDOW]
        by_type: Dict[str, int] = {}
        for error in policy_errors:
            by_type[error.type.value] = by_type.get(error.type.value, 0) + 1
        return PolicyErrorStats(
            total_policy_errors=len(policy_errors),
            recent_policy_errors=len(recent),
            errors_by_type=by_type,
            last_policy_error=policy_errors[-1] if policy_errors else None,
            has_critical_errors=any(is_critical_policy_error(e.type) for e in policy_errors),
        )

    def should_use_policy_fallback(self) -> bool:
        """True when callers should stop hitting policy-guarded tables for now."""
        stats = self.get_policy_error_stats()
        return stats.has_critical_errors or stats.recent_policy_errors > POLICY_FALLBACK_RECENT_THRESHOLD

    def reset(self) -> None:
        transitions = []
        with self._lock:
            if self._state != CircuitState.CLOSED:
                transitions.append(self._transition(CircuitState.CLOSED))
            self._failure_count = 0
            self._success_count = 0
            self._request_count = 0
            self._last_failure_time = None
            self._trial_in_flight = False
            self._error_history.clear()
        logger.info(f"Circuit {self.name}: manual reset")
        if self.monitor:
            self.monitor.log_reset()
        self._notify(transitions)
