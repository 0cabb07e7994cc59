"""Standardized error handling for the control surfaces.

This module provides consistent response formatting for the MCP tools and
status-code mapping for the HTTP API. Use these helpers instead of ad-hoc
error string formatting.

Usage:
    from server.errors import tool_error, tool_success, ErrorCodes

    # Simple error
    return tool_error("No active bot session", code=ErrorCodes.INVALID_STATE)

    # Success with data
    return tool_success("Joined meeting", data={"url": url})

    # HTTP status for a failure
    status = http_status_for(ErrorCodes.NOT_FOUND)
"""

import json
from typing import Any


def tool_error(
    message: str,
    error: str | None = None,
    code: str | None = None,
    context: dict[str, Any] | None = None,
    hint: str | None = None,
) -> str:
    """Create a standardized error response string.

    Args:
        message: Main error message (shown prominently)
        error: Detailed error text (e.g., exception message)
        code: Error code for programmatic handling (e.g., "NOT_FOUND", "AUTH_FAILED")
        context: Additional context dict (e.g., {"step": "join button"})
        hint: Helpful hint for resolving the error

    Returns:
        Formatted error string with ❌ prefix

    Examples:
        >>> tool_error("Join failed", code="NOT_FOUND")
        '❌ Join failed [NOT_FOUND]'
    """
    parts = [f"❌ {message}"]

    if error:
        parts.append(f"\n**Error:** {error}")

    if code:
        parts.append(f" [{code}]")

    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        parts.append(f"\n**Context:** {context_str}")

    if hint:
        parts.append(f"\n💡 **Hint:** {hint}")

    return "".join(parts)


def tool_success(
    message: str,
    data: dict[str, Any] | None = None,
    context: dict[str, Any] | None = None,
) -> str:
    """Create a standardized success response string.

    Args:
        message: Main success message
        data: Result data to include
        context: Additional context dict

    Returns:
        Formatted success string with ✅ prefix

    Examples:
        >>> tool_success("Bot initialized")
        '✅ Bot initialized'

        >>> tool_success("Joined", data={"url": "https://meet.google.com/abc"})
        '✅ Joined\\n**url:** https://meet.google.com/abc'
    """
    parts = [f"✅ {message}"]

    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        parts.append(f"\n**Context:** {context_str}")

    if data:
        for key, value in data.items():
            if isinstance(value, (list, dict)):
                formatted = json.dumps(value, indent=2, default=str)
                parts.append(f"\n**{key}:**\n```\n{formatted}\n```")
            else:
                parts.append(f"\n**{key}:** {value}")

    return "".join(parts)


def tool_warning(
    message: str,
    details: str | None = None,
    context: dict[str, Any] | None = None,
) -> str:
    """Create a standardized warning response string.

    Args:
        message: Main warning message
        details: Additional details
        context: Additional context dict

    Returns:
        Formatted warning string with ⚠️ prefix
    """
    parts = [f"⚠️ {message}"]

    if details:
        parts.append(f"\n{details}")

    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        parts.append(f"\n**Context:** {context_str}")

    return "".join(parts)


# Common error codes for consistency
class ErrorCodes:
    """Standard error codes for tool responses."""

    # Authentication/Authorization
    AUTH_FAILED = "AUTH_FAILED"

    # Resource errors
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # Operation errors
    TIMEOUT = "TIMEOUT"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_STATE = "INVALID_STATE"

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    DEPENDENCY_FAILED = "DEPENDENCY_FAILED"


_HTTP_STATUS = {
    ErrorCodes.INVALID_INPUT: 400,
    ErrorCodes.INVALID_STATE: 400,
    ErrorCodes.SERVICE_UNAVAILABLE: 503,
}


def http_status_for(code: str | None) -> int:
    """Map an error code to an HTTP status (500 when unknown)."""
    return _HTTP_STATUS.get(code or ErrorCodes.INTERNAL_ERROR, 500)
