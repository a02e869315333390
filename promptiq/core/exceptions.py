"""
Custom exceptions for PromptIQ.
Provides domain-specific error handling with proper HTTP status codes.
"""
from typing import Any

from fastapi import HTTPException


class PromptIQException(Exception):
    """Base exception for all PromptIQ errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize as an error payload."""
        error: dict[str, Any] = {
            "message": self.message,
            "code": self.error_code,
        }
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        detail = {
            "message": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            detail["details"] = self.details
        return HTTPException(status_code=self.status_code, detail=detail)


# ============== Thread Exceptions ==============


class ThreadNotFoundError(PromptIQException):
    """Raised when a thread does not exist or belongs to another user."""

    status_code = 404
    error_code = "THREAD_NOT_FOUND"

    def __init__(self, thread_id: str, details: dict[str, Any] | None = None):
        super().__init__(f"Thread not found: {thread_id}", details)
        self.thread_id = thread_id


# ============== Security Exceptions ==============


class AuthenticationError(PromptIQException):
    """Raised when authentication fails."""

    status_code = 401
    error_code = "AUTHENTICATION_ERROR"


# ============== Validation Exceptions ==============


class ValidationError(PromptIQException):
    """Raised when validation fails."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.field = field


# ============== Upstream Exceptions ==============


class UpstreamError(PromptIQException):
    """Raised when the upstream inference provider cannot be reached."""

    status_code = 502
    error_code = "UPSTREAM_ERROR"


# ============== Streaming Client Exceptions ==============


class SendInProgressError(PromptIQException):
    """Raised when a send is started while another is still streaming."""

    status_code = 409
    error_code = "SEND_IN_PROGRESS"

    def __init__(self, details: dict[str, Any] | None = None):
        super().__init__("A message is already being streamed", details)
