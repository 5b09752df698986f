"""
Circuit breaker introspection for the admin dashboard.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from valorwell.api import deps
from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.core.circuit_breaker_monitor import CircuitBreakerMonitor
from valorwell.services.roles import UserRoleContext

router = APIRouter()


@router.get("/circuit-breaker")
async def circuit_breaker_state(
    breaker: CircuitBreaker = Depends(deps.get_breaker),
    _: UserRoleContext = Depends(deps.get_staff_context),
) -> Dict[str, Any]:
    return breaker.get_state().to_dict()


@router.get("/circuit-breaker/policy-errors")
async def circuit_breaker_policy_errors(
    breaker: CircuitBreaker = Depends(deps.get_breaker),
    _: UserRoleContext = Depends(deps.get_staff_context),
) -> Dict[str, Any]:
    return {
        **breaker.get_policy_error_stats().to_dict(),
        "should_use_fallback": breaker.should_use_policy_fallback(),
    }


@router.get("/circuit-breaker/metrics")
async def circuit_breaker_metrics(
    events: Optional[int] = Query(default=20, ge=0, le=1000),
    monitor: CircuitBreakerMonitor = Depends(deps.get_monitor),
    _: UserRoleContext = Depends(deps.get_staff_context),
) -> Dict[str, Any]:
    return {
        "summary": monitor.get_metrics_summary(),
        "metrics": monitor.get_metrics().to_dict(),
        "events": [e.to_dict() for e in monitor.get_events(events)],
    }


@router.post("/circuit-breaker/reset")
async def reset_circuit_breaker(
    breaker: CircuitBreaker = Depends(deps.get_breaker),
    _: UserRoleContext = Depends(deps.require_admin),
) -> Dict[str, Any]:
    """Manually close the circuit (admin only)."""
    breaker.reset()
    return breaker.get_state().to_dict()
