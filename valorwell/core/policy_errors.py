"""
User-facing messages and support codes for classified backend errors.

The technical message (which may quote table or policy names) is for logs
only; API responses carry the user message, the short code and the
suggested actions.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from valorwell.core.error_classification import ErrorType, is_policy_error

__all__ = [
    "PolicyErrorInfo",
    "get_policy_error_message",
    "get_error_code",
    "generate_error_report",
]


@dataclass(frozen=True)
class PolicyErrorInfo:
    user_message: str
    technical_message: str
    actionable: bool
    severity: str  # low, medium, high, critical
    suggested_actions: List[str] = field(default_factory=list)


_ERROR_CODES: Dict[ErrorType, str] = {
    ErrorType.POLICY_INFINITE_RECURSION: "POL_RECURSION",
    ErrorType.POLICY_CIRCULAR_DEPENDENCY: "POL_CIRCULAR",
    ErrorType.POLICY_EVALUATION_ERROR: "POL_EVAL",
    ErrorType.SCHEMA_MISMATCH: "SCHEMA_ERR",
    ErrorType.PERMISSION_ERROR: "PERM_ERR",
    ErrorType.NETWORK_ERROR: "NET_ERR",
    ErrorType.TIMEOUT_ERROR: "TIMEOUT_ERR",
    ErrorType.UNKNOWN_ERROR: "UNKNOWN_ERR",
}


def get_error_code(error_type: ErrorType) -> str:
    """Short code for logs and support tickets."""
    return _ERROR_CODES.get(error_type, "UNKNOWN_ERR")


def get_policy_error_message(error_type: ErrorType, original_message: str) -> PolicyErrorInfo:
    code = get_error_code(error_type)

    if error_type == ErrorType.POLICY_INFINITE_RECURSION:
        return PolicyErrorInfo(
            user_message=(
                "We're experiencing a technical issue loading your information. "
                "Our team has been notified. Please try again later."
            ),
            technical_message=f"Database policy infinite recursion detected: {original_message}",
            actionable=False,
            severity="critical",
            suggested_actions=[
                "Please try again in a few minutes",
                f"If the issue persists, contact support with error code: {code}",
            ],
        )

    if error_type == ErrorType.POLICY_CIRCULAR_DEPENDENCY:
        return PolicyErrorInfo(
            user_message=(
                "A configuration issue is preventing this request from completing. "
                "Our technical team has been alerted. Please try again later."
            ),
            technical_message=f"Database policy circular dependency detected: {original_message}",
            actionable=False,
            severity="critical",
            suggested_actions=[
                "Please wait while we resolve this issue",
                f"Contact support if you need immediate assistance with error code: {code}",
            ],
        )

    if error_type == ErrorType.POLICY_EVALUATION_ERROR:
        return PolicyErrorInfo(
            user_message=(
                "We're having trouble processing your information due to a security policy issue. "
                "Please try again later."
            ),
            technical_message=f"Database policy evaluation failed: {original_message}",
            actionable=True,
            severity="high",
            suggested_actions=[
                "Try refreshing the page later",
                f"Contact support if the problem continues with error code: {code}",
            ],
        )

    if error_type == ErrorType.SCHEMA_MISMATCH:
        return PolicyErrorInfo(
            user_message="There's a data format issue on our side. Our team is working on a fix.",
            technical_message=f"Database schema mismatch: {original_message}",
            actionable=False,
            severity="high",
            suggested_actions=[
                "Please try again in a few minutes",
                f"Contact support with error code: {code} if the issue persists",
            ],
        )

    if error_type == ErrorType.PERMISSION_ERROR:
        return PolicyErrorInfo(
            user_message="You don't have permission to perform this action. Please check your account status.",
            technical_message=f"Permission denied: {original_message}",
            actionable=True,
            severity="medium",
            suggested_actions=[
                "Try logging out and logging back in",
                "Contact your administrator to verify your account permissions",
                "Ensure your session hasn't expired",
            ],
        )

    if error_type == ErrorType.NETWORK_ERROR:
        return PolicyErrorInfo(
            user_message="We couldn't reach the data service. Please try again.",
            technical_message=f"Network error: {original_message}",
            actionable=True,
            severity="medium",
            suggested_actions=["Wait a moment and try again"],
        )

    if error_type == ErrorType.TIMEOUT_ERROR:
        return PolicyErrorInfo(
            user_message="The request is taking longer than expected. Please try again.",
            technical_message=f"Request timeout: {original_message}",
            actionable=True,
            severity="medium",
            suggested_actions=[
                "Try submitting again",
                "Contact support if timeouts continue",
            ],
        )

    return PolicyErrorInfo(
        user_message="An unexpected error occurred. Please try again or contact support if the issue persists.",
        technical_message=f"Unknown error: {original_message}",
        actionable=True,
        severity="medium",
        suggested_actions=[
            "Try again",
            "Contact support with the error details if the problem continues",
        ],
    )


def generate_error_report(
    error_type: ErrorType,
    original_message: str,
    context: Optional[Dict[str, Any]] = None,
) -> str:
    """JSON report for logs and support escalation."""
    info = get_policy_error_message(error_type, original_message)
    return json.dumps(
        {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error_code": get_error_code(error_type),
            "error_type": error_type.value,
            "severity": info.severity,
            "user_message": info.user_message,
            "technical_message": info.technical_message,
            "original_message": original_message,
            "context": context or {},
            "is_policy_error": is_policy_error(error_type),
        },
        indent=2,
        default=str,
    )
