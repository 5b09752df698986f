"""
Classification of backend call failures.

Every failure that crosses the circuit breaker boundary is tagged with an
ErrorType and a retryable flag. Classification is substring-based on the
error message (plus a handful of error codes and exception types), so it is
coupled to the wording of the hosted backend's error text.

Policy kinds come from the row-level-security engine. Retrying them cannot
succeed until the policy itself is fixed, so they are never retryable.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import httpx

__all__ = [
    "ErrorType",
    "ErrorInfo",
    "classify_error",
    "extract_error_message",
    "is_policy_error",
    "is_critical_policy_error",
    "POLICY_ERROR_TYPES",
    "CRITICAL_POLICY_ERROR_TYPES",
]


class ErrorType(str, Enum):
    SCHEMA_MISMATCH = "schema_mismatch"
    NETWORK_ERROR = "network_error"
    PERMISSION_ERROR = "permission_error"
    TIMEOUT_ERROR = "timeout_error"
    POLICY_INFINITE_RECURSION = "policy_infinite_recursion"
    POLICY_CIRCULAR_DEPENDENCY = "policy_circular_dependency"
    POLICY_EVALUATION_ERROR = "policy_evaluation_error"
    UNKNOWN_ERROR = "unknown_error"


POLICY_ERROR_TYPES = frozenset(
    {
        ErrorType.POLICY_INFINITE_RECURSION,
        ErrorType.POLICY_CIRCULAR_DEPENDENCY,
        ErrorType.POLICY_EVALUATION_ERROR,
    }
)

# Open the circuit on first sight
CRITICAL_POLICY_ERROR_TYPES = frozenset(
    {
        ErrorType.POLICY_INFINITE_RECURSION,
        ErrorType.POLICY_CIRCULAR_DEPENDENCY,
    }
)

_RETRYABLE_TYPES = frozenset(
    {
        ErrorType.NETWORK_ERROR,
        ErrorType.TIMEOUT_ERROR,
        ErrorType.UNKNOWN_ERROR,
    }
)

_INFINITE_RECURSION_PATTERNS = (
    "infinite recursion detected in policy",
    "infinite recursion",
    "query timeout - possible infinite recursion",
)
_CIRCULAR_DEPENDENCY_PATTERNS = (
    "circular dependency",
    "policy dependency cycle",
    "recursive policy evaluation",
)
_POLICY_EVALUATION_PATTERNS = (
    "policy evaluation failed",
    "rls policy error",
    "row level security",
    "row-level security",
)
_NETWORK_PATTERNS = ("fetch", "network", "connection", "econnrefused", "enotfound")
_PERMISSION_PATTERNS = ("permission", "unauthorized", "forbidden", "access denied")
_TIMEOUT_PATTERNS = ("timeout", "aborted")

_PERMISSION_CODES = ("PGRST301", "PGRST116")


@dataclass(frozen=True)
class ErrorInfo:
    type: ErrorType
    message: str
    retryable: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "message": self.message,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
        }


def extract_error_message(error: Any) -> str:
    """Best-effort message text for exceptions, strings and error payloads."""
    if isinstance(error, str):
        return error
    if isinstance(error, dict) and "message" in error:
        return str(error["message"])
    message = getattr(error, "message", None)
    if message is not None:
        return str(message)
    if isinstance(error, BaseException):
        text = str(error)
        return text if text else type(error).__name__
    return "Unknown error"


def _error_code(error: Any) -> Optional[str]:
    if isinstance(error, dict):
        code = error.get("code")
    else:
        code = getattr(error, "code", None)
    return str(code) if code is not None else None


def _contains_any(text: str, patterns: tuple[str, ...]) -> bool:
    return any(pattern in text for pattern in patterns)


def _classify_type(error: Any, message: str) -> ErrorType:
    text = message.lower()
    code = _error_code(error)

    if _contains_any(text, _INFINITE_RECURSION_PATTERNS):
        return ErrorType.POLICY_INFINITE_RECURSION

    if _contains_any(text, _CIRCULAR_DEPENDENCY_PATTERNS):
        return ErrorType.POLICY_CIRCULAR_DEPENDENCY

    if _contains_any(text, _POLICY_EVALUATION_PATTERNS) or (
        "policy" in text and ("failed" in text or "error" in text)
    ):
        return ErrorType.POLICY_EVALUATION_ERROR

    if "column" in text and ("does not exist" in text or "not found" in text):
        return ErrorType.SCHEMA_MISMATCH

    # httpx timeouts subclass TransportError, check them before network
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return ErrorType.TIMEOUT_ERROR

    if (
        _contains_any(text, _NETWORK_PATTERNS)
        or code == "NETWORK_ERROR"
        or isinstance(error, (httpx.TransportError, ConnectionError))
    ):
        return ErrorType.NETWORK_ERROR

    if _contains_any(text, _PERMISSION_PATTERNS) or code in _PERMISSION_CODES:
        return ErrorType.PERMISSION_ERROR

    if _contains_any(text, _TIMEOUT_PATTERNS) or code == "TIMEOUT" or isinstance(error, asyncio.CancelledError):
        return ErrorType.TIMEOUT_ERROR

    return ErrorType.UNKNOWN_ERROR


def classify_error(error: Any) -> ErrorInfo:
    """
    Tag a failure with its ErrorType and whether a caller may retry it.

    Order matters: policy patterns win over everything else, so
    "Query timeout - possible infinite recursion" is a recursion error,
    not a timeout.
    """
    message = extract_error_message(error)
    error_type = _classify_type(error, message)
    return ErrorInfo(
        type=error_type,
        message=message,
        retryable=error_type in _RETRYABLE_TYPES,
    )


def is_policy_error(error_type: ErrorType) -> bool:
    return error_type in POLICY_ERROR_TYPES


def is_critical_policy_error(error_type: ErrorType) -> bool:
    return error_type in CRITICAL_POLICY_ERROR_TYPES
