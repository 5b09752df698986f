"""
Circuit breaker monitoring and alerting.

Keeps a bounded event log of breaker activity, derives reliability metrics
from it and raises alerts when the breaker opens too often, stays open too
long, or the success rate drops.

Alerts are delivered to callbacks registered with on_alert() and reported
through capture_message() so they reach Sentry when it is configured.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Deque, Dict, List, Optional

import structlog

from valorwell.core.errors import capture_message

logger = structlog.get_logger(__name__)

__all__ = [
    "AlertConfig",
    "AlertInfo",
    "CircuitBreakerEvent",
    "CircuitBreakerMetrics",
    "CircuitBreakerMonitor",
]

MAX_EVENT_HISTORY = 1000
UPTIME_WINDOW = timedelta(hours=1)


@dataclass
class AlertConfig:
    enabled: bool = True
    frequent_opening_threshold: int = 3
    frequent_opening_window: timedelta = timedelta(minutes=5)
    long_open_duration_threshold: timedelta = timedelta(minutes=2)
    low_reliability_threshold: float = 80.0  # percent
    low_reliability_min_requests: int = 10


@dataclass(frozen=True)
class AlertInfo:
    type: str  # frequent_opening, long_open_duration, low_reliability
    severity: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CircuitBreakerEvent:
    timestamp: datetime
    event_type: str  # state_change, error, success, reset
    previous_state: Optional[str] = None
    new_state: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    failure_count: Optional[int] = None
    request_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "previous_state": self.previous_state,
            "new_state": self.new_state,
            "error_type": self.error_type,
            "error_message": self.error_message,
            "failure_count": self.failure_count,
            "request_count": self.request_count,
        }


@dataclass
class CircuitBreakerMetrics:
    total_state_changes: int = 0
    open_events: int = 0
    closed_events: int = 0
    half_open_events: int = 0
    total_errors: int = 0
    total_successes: int = 0
    total_requests: int = 0
    errors_by_type: Dict[str, int] = field(default_factory=dict)
    average_recovery_seconds: float = 0.0
    frequent_opening_alerts: int = 0
    last_open_time: Optional[datetime] = None
    last_close_time: Optional[datetime] = None
    uptime: float = 100.0
    reliability: float = 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_state_changes": self.total_state_changes,
            "open_events": self.open_events,
            "closed_events": self.closed_events,
            "half_open_events": self.half_open_events,
            "total_errors": self.total_errors,
            "total_successes": self.total_successes,
            "total_requests": self.total_requests,
            "errors_by_type": dict(self.errors_by_type),
            "average_recovery_seconds": round(self.average_recovery_seconds, 1),
            "frequent_opening_alerts": self.frequent_opening_alerts,
            "last_open_time": self.last_open_time.isoformat() if self.last_open_time else None,
            "last_close_time": self.last_close_time.isoformat() if self.last_close_time else None,
            "uptime": round(self.uptime, 1),
            "reliability": round(self.reliability, 1),
        }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CircuitBreakerMonitor:
    """
    Event log, metrics and alerting for a single circuit breaker.

    The breaker calls log_state_change / log_error / log_success / log_reset;
    nothing here feeds back into breaker decisions.
    """

    def __init__(
        self,
        alert_config: Optional[AlertConfig] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.alert_config = alert_config or AlertConfig()
        self.enabled = True
        self._clock = clock
        self._events: Deque[CircuitBreakerEvent] = deque(maxlen=MAX_EVENT_HISTORY)
        self._metrics = CircuitBreakerMetrics()
        self._alert_callbacks: List[Callable[[AlertInfo], Any]] = []
        self._lock = Lock()

    # ---- event logging ----

    def log_state_change(
        self,
        previous_state: str,
        new_state: str,
        failure_count: Optional[int] = None,
        request_count: Optional[int] = None,
    ) -> None:
        if not self.enabled:
            return
        with self._lock:
            now = self._clock()
            self._events.append(
                CircuitBreakerEvent(
                    timestamp=now,
                    event_type="state_change",
                    previous_state=previous_state,
                    new_state=new_state,
                    failure_count=failure_count,
                    request_count=request_count,
                )
            )
            self._update_state_change_metrics(new_state, now)
            self._update_reliability_metrics(now)
        logger.info(
            "Circuit breaker state change",
            previous_state=previous_state,
            new_state=new_state,
            failure_count=failure_count,
        )
        self._check_for_alerts()

    def log_error(
        self,
        error_type: str,
        error_message: str,
        failure_count: Optional[int] = None,
        request_count: Optional[int] = None,
    ) -> None:
        if not self.enabled:
            return
        with self._lock:
            now = self._clock()
            self._events.append(
                CircuitBreakerEvent(
                    timestamp=now,
                    event_type="error",
                    error_type=error_type,
                    error_message=error_message,
                    failure_count=failure_count,
                    request_count=request_count,
                )
            )
            self._metrics.total_errors += 1
            self._metrics.total_requests += 1
            self._metrics.errors_by_type[error_type] = self._metrics.errors_by_type.get(error_type, 0) + 1
            self._update_reliability_metrics(now)
        self._check_for_alerts()

    def log_success(self, request_count: Optional[int] = None) -> None:
        if not self.enabled:
            return
        with self._lock:
            now = self._clock()
            self._events.append(
                CircuitBreakerEvent(timestamp=now, event_type="success", request_count=request_count)
            )
            self._metrics.total_successes += 1
            self._metrics.total_requests += 1
            self._update_reliability_metrics(now)
        self._check_for_alerts()

    def log_reset(self) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._events.append(CircuitBreakerEvent(timestamp=self._clock(), event_type="reset"))
            # Request counters restart, state-change history is kept
            self._metrics.total_errors = 0
            self._metrics.total_successes = 0
            self._metrics.total_requests = 0
            self._metrics.reliability = 100.0
        logger.info("Circuit breaker manual reset")

    # ---- metrics ----

    def _update_state_change_metrics(self, new_state: str, now: datetime) -> None:
        m = self._metrics
        m.total_state_changes += 1
        if new_state == "OPEN":
            m.open_events += 1
            m.last_open_time = now
        elif new_state == "CLOSED":
            m.closed_events += 1
            m.last_close_time = now
            if m.last_open_time is not None:
                recovery = (now - m.last_open_time).total_seconds()
                m.average_recovery_seconds = (
                    (m.average_recovery_seconds * (m.closed_events - 1)) + recovery
                ) / m.closed_events
        elif new_state == "HALF_OPEN":
            m.half_open_events += 1

    def _update_reliability_metrics(self, now: datetime) -> None:
        m = self._metrics
        if m.total_requests > 0:
            m.reliability = (m.total_successes / m.total_requests) * 100

        open_seconds = self._seconds_in_state("OPEN", now)
        window = UPTIME_WINDOW.total_seconds()
        m.uptime = max(0.0, ((window - open_seconds) / window) * 100)

    def _seconds_in_state(self, state: str, now: datetime) -> float:
        window_start = now - UPTIME_WINDOW
        current_state = "CLOSED"
        state_start = window_start
        total = 0.0
        for event in self._events:
            if event.event_type != "state_change" or event.timestamp < window_start:
                continue
            if current_state == state:
                total += (event.timestamp - state_start).total_seconds()
            current_state = event.new_state or current_state
            state_start = event.timestamp
        if current_state == state:
            total += (now - state_start).total_seconds()
        return total

    # ---- alerts ----

    def on_alert(self, callback: Callable[[AlertInfo], Any]) -> None:
        self._alert_callbacks.append(callback)

    def _check_for_alerts(self) -> None:
        if not self.alert_config.enabled:
            return
        alerts: List[AlertInfo] = []
        with self._lock:
            now = self._clock()
            alert = self._frequent_opening_alert(now)
            if alert:
                alerts.append(alert)
            alert = self._long_open_duration_alert(now)
            if alert:
                alerts.append(alert)
            alert = self._low_reliability_alert()
            if alert:
                alerts.append(alert)
        for alert in alerts:
            self._trigger_alert(alert)

    def _frequent_opening_alert(self, now: datetime) -> Optional[AlertInfo]:
        window = self.alert_config.frequent_opening_window
        recent_opens = [
            e
            for e in self._events
            if e.event_type == "state_change" and e.new_state == "OPEN" and e.timestamp >= now - window
        ]
        if len(recent_opens) < self.alert_config.frequent_opening_threshold:
            return None
        self._metrics.frequent_opening_alerts += 1
        return AlertInfo(
            type="frequent_opening",
            severity="high",
            message=f"Circuit breaker opened {len(recent_opens)} times in {int(window.total_seconds())}s",
            data={"open_count": len(recent_opens), "recent_errors": self._recent_error_types(now)},
        )

    def _long_open_duration_alert(self, now: datetime) -> Optional[AlertInfo]:
        m = self._metrics
        if m.last_open_time is None:
            return None
        if m.last_close_time is not None and m.last_close_time >= m.last_open_time:
            return None
        open_duration = now - m.last_open_time
        if open_duration <= self.alert_config.long_open_duration_threshold:
            return None
        return AlertInfo(
            type="long_open_duration",
            severity="medium",
            message=f"Circuit breaker has been open for {int(open_duration.total_seconds())}s",
            data={"open_seconds": open_duration.total_seconds()},
        )

    def _low_reliability_alert(self) -> Optional[AlertInfo]:
        m = self._metrics
        if m.total_requests <= self.alert_config.low_reliability_min_requests:
            return None
        if m.reliability >= self.alert_config.low_reliability_threshold:
            return None
        return AlertInfo(
            type="low_reliability",
            severity="medium",
            message=f"Circuit breaker reliability dropped to {m.reliability:.1f}%",
            data={"reliability": m.reliability, "errors_by_type": dict(m.errors_by_type)},
        )

    def _recent_error_types(self, now: datetime) -> Dict[str, int]:
        cutoff = now - timedelta(minutes=5)
        counts: Dict[str, int] = {}
        for event in self._events:
            if event.event_type == "error" and event.error_type and event.timestamp >= cutoff:
                counts[event.error_type] = counts.get(event.error_type, 0) + 1
        return counts

    def _trigger_alert(self, alert: AlertInfo) -> None:
        capture_message(
            f"Circuit breaker alert: {alert.message}",
            level="warning",
            context={"alert_type": alert.type, "severity": alert.severity, **alert.data},
            tags={"alert_type": alert.type},
        )
        for callback in self._alert_callbacks:
            try:
                callback(alert)
            except Exception as e:
                logger.error("Circuit breaker alert callback failed", error=str(e))

    # ---- public API ----

    def get_metrics(self) -> CircuitBreakerMetrics:
        with self._lock:
            m = self._metrics
            return CircuitBreakerMetrics(**{**m.__dict__, "errors_by_type": dict(m.errors_by_type)})

    def get_metrics_summary(self) -> Dict[str, Any]:
        m = self.get_metrics()
        top_errors = sorted(m.errors_by_type.items(), key=lambda item: item[1], reverse=True)[:3]
        return {
            "reliability": f"{m.reliability:.1f}%",
            "uptime": f"{m.uptime:.1f}%",
            "total_requests": m.total_requests,
            "open_events": m.open_events,
            "average_recovery_time": f"{round(m.average_recovery_seconds)}s",
            "top_error_types": [f"{error_type}: {count}" for error_type, count in top_errors],
        }

    def get_events(self, limit: Optional[int] = None) -> List[CircuitBreakerEvent]:
        with self._lock:
            events = list(self._events)
        return events[-limit:] if limit else events

    def reset(self) -> None:
        """Drop all events and metrics (unlike log_reset, which keeps history)."""
        with self._lock:
            self._events.clear()
            self._metrics = CircuitBreakerMetrics()
