"""
Unified error handling with Sentry integration.

Provides centralized exception reporting with:
- Optional Sentry error tracking (enabled when a DSN is configured)
- Structured logging enriched with request context
- Custom fingerprinting so backend policy failures group together

Usage:
    capture_exception(exc, context={"table": "appointments"})

    capture_message("Circuit breaker opened", level="warning")
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import sentry_sdk
import structlog
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from valorwell.core.context import get_context_dict, get_request_id, get_user_id

logger = structlog.get_logger(__name__)

__all__ = [
    "init_sentry",
    "capture_exception",
    "capture_message",
]

_sentry_initialized: bool = False


def init_sentry(
    dsn: str,
    environment: str = "production",
    traces_sample_rate: float = 0.1,
    release: Optional[str] = None,
) -> bool:
    """
    Initialize Sentry SDK for error tracking.

    Returns:
        True if initialization successful, False otherwise
    """
    global _sentry_initialized

    if not dsn:
        logger.info("Sentry disabled (no DSN provided)")
        return False

    if not release:
        release = os.environ.get("GIT_COMMIT_SHA")

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            release=release,
            # PHI must never leave the process
            send_default_pii=False,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                HttpxIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR,
                ),
            ],
            ignore_errors=[
                KeyboardInterrupt,
                SystemExit,
            ],
            before_send=_before_send,
        )
    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))
        return False

    _sentry_initialized = True
    logger.info(
        "Sentry initialized",
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        release=release,
    )
    return True


def _before_send(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Drop health check noise and tag events with request context."""
    if "request" in event:
        url = event["request"].get("url", "")
        if "/health" in url:
            return None
        # Request bodies may carry clinical data
        event["request"].pop("data", None)

    request_id = get_request_id()
    if request_id:
        event.setdefault("tags", {})["request_id"] = request_id

    user_id = get_user_id()
    if user_id:
        event.setdefault("user", {})["id"] = str(user_id)

    return event


def capture_exception(
    exc: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
    fingerprint: Optional[list[str]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Capture an exception with Sentry and structured logging.

    Args:
        exc: Exception to capture
        context: Additional context dict (e.g., {"table": "customers"})
        level: Severity level (debug, info, warning, error, fatal)
        fingerprint: Custom grouping fingerprint for Sentry
        tags: Additional tags for filtering in Sentry

    Returns:
        Sentry event ID or None if not sent
    """
    enriched_context = {
        **get_context_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(exc).__name__,
        **(context or {}),
    }

    logger.error(
        "Exception captured",
        exc_info=exc,
        **enriched_context,
    )

    if _sentry_initialized:
        try:
            with sentry_sdk.push_scope() as scope:
                for key, value in enriched_context.items():
                    if value is not None:
                        scope.set_extra(key, value)

                if tags:
                    for key, value in tags.items():
                        scope.set_tag(key, value)

                if fingerprint:
                    scope.fingerprint = fingerprint

                scope.level = level
                return sentry_sdk.capture_exception(exc)
        except Exception as e:
            logger.warning("Failed to send exception to Sentry", error=str(e))

    return None


def capture_message(
    message: str,
    level: str = "info",
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Capture a message with Sentry (for non-exception events).

    Used for circuit breaker state changes and monitor alerts.
    """
    enriched_context = {
        **get_context_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **(context or {}),
    }

    log_func = getattr(logger, level, logger.info)
    log_func(message, **enriched_context)

    if _sentry_initialized:
        try:
            with sentry_sdk.push_scope() as scope:
                for key, value in enriched_context.items():
                    if value is not None:
                        scope.set_extra(key, value)

                if tags:
                    for key, value in tags.items():
                        scope.set_tag(key, value)

                scope.level = level
                return sentry_sdk.capture_message(message, level=level)
        except Exception as e:
            logger.warning("Failed to send message to Sentry", error=str(e))

    return None

