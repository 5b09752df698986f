"""
Request context management.

Carries request_id, correlation_id and the authenticated portal user
(user_id / tenant_id) across logs and error reports. Uses contextvars so
values stay isolated between concurrent requests on the event loop.
"""

from contextvars import ContextVar
from typing import Optional
import uuid

import structlog

__all__ = [
    "set_request_id",
    "get_request_id",
    "generate_request_id",
    "set_user_id",
    "get_user_id",
    "set_tenant_id",
    "get_tenant_id",
    "set_correlation_id",
    "get_correlation_id",
    "clear_context",
    "get_context_dict",
]

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_user_id: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
_tenant_id: ContextVar[Optional[str]] = ContextVar("tenant_id", default=None)
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def generate_request_id() -> str:
    """
    Generate a new request ID.

    Format: req_{16 hex chars}
    """
    return f"req_{uuid.uuid4().hex[:16]}"


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id.get()


def set_user_id(user_id: str) -> None:
    """Set the authenticated profile id (backend auth user UUID)."""
    _user_id.set(user_id)
    structlog.contextvars.bind_contextvars(user_id=user_id)


def get_user_id() -> Optional[str]:
    return _user_id.get()


def set_tenant_id(tenant_id: str) -> None:
    _tenant_id.set(tenant_id)
    structlog.contextvars.bind_contextvars(tenant_id=tenant_id)


def get_tenant_id() -> Optional[str]:
    return _tenant_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID passed through via X-Correlation-ID."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def clear_context() -> None:
    """Clear all context variables at the end of a request."""
    _request_id.set(None)
    _user_id.set(None)
    _tenant_id.set(None)
    _correlation_id.set(None)
    structlog.contextvars.clear_contextvars()


def get_context_dict() -> dict:
    """All context variables as a dict, for enriching error reports."""
    return {
        "request_id": get_request_id(),
        "user_id": get_user_id(),
        "tenant_id": get_tenant_id(),
        "correlation_id": get_correlation_id(),
    }
