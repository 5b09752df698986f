"""
Unified health check.

Aggregates health from the backend circuit breaker and a reachability probe
against the hosted backend.

Usage:
    health = await HealthCheck.check_overall_health(backend, breaker)
    # Returns: {"status": "ok", "components": {...}}

Each component returns:
- status: "ok", "warning", or "critical"
- Additional context for debugging
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, Literal

import httpx
import structlog

from valorwell.core.circuit_breaker import CircuitBreaker, CircuitState
from valorwell.services.backend_client import BackendClient

logger = structlog.get_logger(__name__)

__all__ = ["HealthCheck", "ThresholdStatus"]

ThresholdStatus = Literal["ok", "warning", "critical"]

BACKEND_SLOW_MS = 1000


class HealthCheck:
    @staticmethod
    def check_circuit_health(breaker: CircuitBreaker) -> Dict[str, Any]:
        """
        Circuit breaker health.

        open = critical, half open or a critical policy error on record = warning.
        """
        snapshot = breaker.get_state()

        status: ThresholdStatus = "ok"
        if snapshot.state == CircuitState.OPEN:
            status = "critical"
        elif snapshot.state == CircuitState.HALF_OPEN or snapshot.has_critical_policy_errors:
            status = "warning"

        return {
            "status": status,
            "state": snapshot.state.value,
            "failure_count": snapshot.failure_count,
            "last_error_type": snapshot.last_error_type.value if snapshot.last_error_type else None,
            "policy_fallback": breaker.should_use_policy_fallback(),
        }

    @staticmethod
    async def check_backend_health(backend: BackendClient) -> Dict[str, Any]:
        """Backend reachability and round-trip time."""
        start = time.perf_counter()
        try:
            reachable = await backend.ping()
        except httpx.HTTPError as e:
            logger.error("Backend health check failed", error=str(e))
            return {
                "status": "critical",
                "reason": f"Backend unreachable: {e}",
            }

        duration_ms = (time.perf_counter() - start) * 1000
        status: ThresholdStatus = "ok"
        if not reachable:
            status = "critical"
        elif duration_ms >= BACKEND_SLOW_MS:
            status = "warning"

        return {
            "status": status,
            "response_time_ms": round(duration_ms, 1),
        }

    @staticmethod
    async def check_overall_health(backend: BackendClient, breaker: CircuitBreaker) -> Dict[str, Any]:
        """
        Worst status across components.

        HTTP status should be 200 for "ok" and "warning", 503 for "critical".
        """
        circuit = HealthCheck.check_circuit_health(breaker)
        backend_health = await HealthCheck.check_backend_health(backend)

        all_statuses = [circuit["status"], backend_health["status"]]
        if "critical" in all_statuses:
            overall_status = "critical"
        elif "warning" in all_statuses:
            overall_status = "warning"
        else:
            overall_status = "ok"

        return {
            "status": overall_status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": {
                "circuit_breaker": circuit,
                "backend": backend_health,
            },
        }
