"""
Shared error handling for the token bridge.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    code: str
    trace_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


def current_trace_id() -> Optional[str]:
    """Hex trace id of the active span, if one is recording."""
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        span_context = current_span.get_span_context()
        if span_context.trace_id != 0:
            return f"{span_context.trace_id:032x}"
    return None


class BridgeException(Exception):
    """Base exception for bridge services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self, include_details: bool = False) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.message,
            code=self.code,
            trace_id=current_trace_id(),
            details=self.details if include_details and self.details else None
        )


class ValidationError(BridgeException):
    """Malformed client input."""

    status_code = 400

    def __init__(self, message: str = "Invalid request", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_REQUEST", message, details)


class InternalError(BridgeException):
    """Unclassified failure caught at the outermost boundary."""

    status_code = 500

    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTERNAL_ERROR", message, details)
