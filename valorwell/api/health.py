from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from valorwell.api import deps
from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.core.health_check import HealthCheck

router = APIRouter()


@router.get("/health")
async def health(request: Request, breaker: CircuitBreaker = Depends(deps.get_breaker)):
    """
    Aggregated health of the backend connection.

    200 for "ok" and "warning", 503 for "critical".
    """
    result = await HealthCheck.check_overall_health(request.app.state.backend, breaker)
    status_code = 503 if result["status"] == "critical" else 200
    return JSONResponse(status_code=status_code, content=result)
