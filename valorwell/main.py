import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional, cast

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from valorwell.api import appointments, clients, forms, health, insurance, messages, portal, system
from valorwell.core.circuit_breaker import CircuitBreaker, CircuitOpenError
from valorwell.core.circuit_breaker_monitor import CircuitBreakerMonitor
from valorwell.core.config import settings
from valorwell.core.error_classification import ErrorType, classify_error, extract_error_message
from valorwell.core.errors import capture_exception, init_sentry
from valorwell.core.logging_config import get_logger
from valorwell.core.policy_errors import get_error_code, get_policy_error_message
from valorwell.middleware.context import RequestContextMiddleware
from valorwell.services.backend_client import BackendClient, BackendError, build_http_client
from valorwell.services.data_access import NotFoundError
from valorwell.services.roles import RoleCache, TenantMembershipMissingError

logger = get_logger(__name__)

ERROR_STATUS_CODES = {
    ErrorType.PERMISSION_ERROR: 403,
    ErrorType.SCHEMA_MISMATCH: 500,
    ErrorType.POLICY_INFINITE_RECURSION: 503,
    ErrorType.POLICY_CIRCULAR_DEPENDENCY: 503,
    ErrorType.POLICY_EVALUATION_ERROR: 503,
    ErrorType.NETWORK_ERROR: 502,
    ErrorType.TIMEOUT_ERROR: 504,
    ErrorType.UNKNOWN_ERROR: 502,
}


def build_breaker(name: str, monitor: Optional[CircuitBreakerMonitor] = None) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
        reset_timeout=settings.CIRCUIT_BREAKER_RESET_TIMEOUT_SECONDS,
        monitoring_period=settings.CIRCUIT_BREAKER_MONITORING_PERIOD_SECONDS,
        count_non_retryable=settings.CIRCUIT_BREAKER_COUNT_NON_RETRYABLE,
        monitor=monitor,
    )


async def circuit_open_handler(request: Request, exc: Exception) -> JSONResponse:
    exc = cast(CircuitOpenError, exc)
    logger.warning("Request rejected, circuit open", path=request.url.path, circuit=exc.name)
    return JSONResponse(
        status_code=503,
        content={
            "error_code": "CIRCUIT_OPEN",
            "error_type": exc.last_error_type.value if exc.last_error_type else None,
            "message": "Service temporarily unavailable. Please try again shortly.",
            "retryable": True,
            "retry_after_seconds": round(exc.retry_after_seconds),
        },
        headers={"Retry-After": str(max(1, round(exc.retry_after_seconds)))},
    )


async def backend_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Classified backend failure. The technical message is logged, never returned."""
    info = classify_error(exc)
    user_info = get_policy_error_message(info.type, info.message)
    logger.error(
        "Backend request failed",
        path=request.url.path,
        error_type=info.type.value,
        technical_message=user_info.technical_message,
    )
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(info.type, 502),
        content={
            "error_code": get_error_code(info.type),
            "error_type": info.type.value,
            "message": user_info.user_message,
            "retryable": info.retryable,
            "suggested_actions": user_info.suggested_actions,
        },
    )


async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def membership_missing_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc)})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    capture_exception(exc, context={"path": request.url.path, "message": extract_error_message(exc)})
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(http_transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """
    Build the API. http_transport replaces the network for the backend
    client (tests pass an httpx.MockTransport).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("ValorWell Portal API starting", backend=settings.SUPABASE_URL)
        init_sentry(
            settings.SENTRY_DSN,
            environment=settings.SENTRY_ENVIRONMENT,
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        )

        http = build_http_client(transport=http_transport)
        monitor = CircuitBreakerMonitor()
        app.state.backend = BackendClient(http, settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
        app.state.monitor = monitor
        app.state.breaker = build_breaker("backend", monitor)
        # Role lookups get their own circuit so admins can still authenticate
        # and reset the data circuit while it is open.
        app.state.identity_breaker = build_breaker("identity")
        app.state.role_cache = RoleCache()
        try:
            yield
        finally:
            await http.aclose()
            logger.info("ValorWell Portal API stopped")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    origins = [
        "http://localhost:5173",  # Vite default
        "http://127.0.0.1:5173",
        settings.FRONTEND_URL,
    ]
    origins = list(set([o for o in origins if o]))

    app.add_middleware(
        cast(Any, CORSMiddleware),
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Correlation-ID", "Retry-After"],
    )
    app.add_middleware(cast(Any, RequestContextMiddleware))

    app.add_exception_handler(CircuitOpenError, circuit_open_handler)
    app.add_exception_handler(BackendError, backend_error_handler)
    app.add_exception_handler(httpx.HTTPError, backend_error_handler)
    app.add_exception_handler(TimeoutError, backend_error_handler)
    app.add_exception_handler(asyncio.TimeoutError, backend_error_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(TenantMembershipMissingError, membership_missing_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    prefix = settings.API_V1_STR
    app.include_router(health.router, prefix=prefix, tags=["health"])
    app.include_router(system.router, prefix=f"{prefix}/system", tags=["system"])
    app.include_router(portal.router, prefix=f"{prefix}/portal", tags=["portal"])
    app.include_router(clients.router, prefix=f"{prefix}/clients", tags=["clients"])
    app.include_router(appointments.router, prefix=f"{prefix}/appointments", tags=["appointments"])
    app.include_router(insurance.router, prefix=prefix, tags=["insurance"])
    app.include_router(forms.router, prefix=f"{prefix}/forms", tags=["forms"])
    app.include_router(messages.router, prefix=f"{prefix}/messages", tags=["messages"])

    @app.get("/")
    def root():
        return {"message": "Welcome to the ValorWell Portal API"}

    return app


app = create_app()
