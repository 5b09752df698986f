"""
Structured logging for the portal API (structlog).

Request context (request_id, correlation_id, user_id, tenant_id) is bound by
the request middleware and merged into every event. Fields that can carry
PHI are masked before rendering, so a stray `logger.info(..., email=...)`
never reaches the log sink.

JSON lines when APP_ENVIRONMENT=production, console output otherwise.

    from valorwell.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("role detected", user_id=user_id, role="staff")
"""

import logging
import os
import sys
from typing import Any, MutableMapping

import structlog

IS_PRODUCTION = os.getenv("APP_ENVIRONMENT") == "production"
IS_TEST = "pytest" in sys.modules

SERVICE_NAME = "valorwell-portal-api"
REDACTED = "[redacted]"

PHI_FIELDS = frozenset(
    {
        "email",
        "phone",
        "date_of_birth",
        "address",
        "first_name",
        "last_name",
        "ssn",
        "member_id",
        "notes",
        "message_body",
        "response_data",
    }
)


def mask_phi_fields(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    for key in event_dict.keys() & PHI_FIELDS:
        if event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def add_service_name(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def build_processors(production: bool = IS_PRODUCTION) -> list[Any]:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        mask_phi_fields,
        add_service_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if production:
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors += [
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(colors=not IS_TEST),
        ]
    return processors


def configure_logging() -> None:
    structlog.configure(
        processors=build_processors(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Breaker and retry modules log through stdlib logging
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stdout, level=logging.INFO)
    for noisy in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
