"""Application-level exception types.

Every failure the proxy reports to a client is an ``AppError`` subclass. The
subclass fixes the HTTP status so routes and services only raise, and the
exception handler renders a consistent envelope.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context rendered into the response body.

    Fields:
        detail: Lower-level message (e.g. transport error), already scrubbed.
        routes: Valid route prefixes, listed on routing failures.
        field: Name of the request field that failed validation.
        retry_after: Seconds until the client may retry (header only).
    """

    detail: str
    routes: list[str]
    field: str
    retry_after: int


@dataclass
class AppError(Exception):
    """Base error for proxy failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured context for the response body.
        headers: Optional extra response headers (e.g. Retry-After).
    """

    code: str
    message: str
    details: ErrorDetails | None = None
    headers: dict[str, str] | None = None

    status_code: ClassVar[int] = 500

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when a chat-completion request body has the wrong shape."""

    status_code: ClassVar[int] = 400


class RouteNotFoundAppError(AppError):
    """Raised when no route prefix matches the request path."""

    status_code: ClassVar[int] = 404


class RateLimitAppError(AppError):
    """Raised when a client exceeds its request budget."""

    status_code: ClassVar[int] = 429


class UpstreamAppError(AppError):
    """Raised when the upstream call fails at the transport level."""

    status_code: ClassVar[int] = 502


class CredentialMissingAppError(AppError):
    """Raised when a route that requires a server-side credential has none."""

    status_code: ClassVar[int] = 503
