"""API utility functions.

Shared helpers for route handlers and exception handlers.
"""

import uuid
from contextvars import ContextVar

from fastapi.responses import JSONResponse

# Context variable for correlation ID (thread-safe, async-safe)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def set_correlation_id(correlation_id: str) -> None:
    """Bind the correlation ID for the current request."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get the current request's correlation ID from context.

    Returns:
        Correlation ID string or None if not in request context
    """
    return _correlation_id.get()


def error_response(
    status_code: int,
    message: str,
    error_type: str,
    *,
    correlation_id: str | None = None,
) -> JSONResponse:
    """Build the standard error envelope.

    Args:
        status_code: HTTP status
        message: Human-readable message safe for clients
        error_type: Stable machine-readable error type
        correlation_id: Overrides the request's correlation ID

    Returns:
        JSONResponse with X-Correlation-ID header
    """
    correlation_id = correlation_id or get_correlation_id() or str(uuid.uuid4())
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": status_code,
                "message": message,
                "type": error_type,
                "correlation_id": correlation_id,
            }
        },
        headers={"X-Correlation-ID": correlation_id},
    )
