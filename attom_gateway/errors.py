"""Exception types and upstream error classification.

Every failure the gateway raises derives from :class:`GatewayError`.
:func:`classify_upstream_error` is the only place that looks at upstream
error wording; callers branch on the returned :class:`UpstreamSignal`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class GatewayError(Exception):
    """Base class for gateway errors."""


class ConfigurationError(GatewayError):
    """Required configuration is missing or invalid."""


class UnknownEndpoint(GatewayError):
    """The endpoint identifier is not registered."""

    def __init__(self, endpoint_id: str) -> None:
        super().__init__(f"Unknown endpoint key: {endpoint_id}")
        self.endpoint_id = endpoint_id


class InvalidQuery(GatewayError):
    """The parameter bag cannot be satisfied for the endpoint."""

    def __init__(self, endpoint_id: str, missing: list[str] | None = None) -> None:
        message = f"Invalid query parameters for {endpoint_id}"
        if missing:
            message += f" (missing: {', '.join(sorted(missing))})"
        super().__init__(message)
        self.endpoint_id = endpoint_id
        self.missing = sorted(missing or [])


class TransportError(GatewayError):
    """Structured upstream failure.

    Carries the HTTP status and raw body of the last failed attempt, the
    final request URL, and how many attempts were made.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: str | None = None,
        url: str | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body
        self.url = url
        self.attempts = attempts

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "status": self.status,
            "body": self.body,
            "url": self.url,
            "attempts": self.attempts,
        }


class RateLimited(GatewayError):
    """The endpoint kind has spent its request budget for the current window."""

    def __init__(self, endpoint_id: str, retry_after: float) -> None:
        super().__init__(f"Request budget for {endpoint_id} exhausted; retry in {retry_after:.0f}s")
        self.endpoint_id = endpoint_id
        self.retry_after = retry_after


class UpstreamSignal(str, Enum):
    """Coarse meaning of an upstream failure."""
    no_record = "no_record"
    no_result = "no_result"
    rate_limited = "rate_limited"
    unauthorized = "unauthorized"


_NO_RECORD_MARKERS = ("unable to locate a property record",)
_NO_RESULT_MARKERS = ("successwithoutresult",)


def classify_upstream_error(exc: BaseException) -> UpstreamSignal | None:
    """Map a transport failure to an :class:`UpstreamSignal`, or None."""
    if not isinstance(exc, TransportError):
        return None

    text = " ".join(part for part in (exc.body, exc.message) if part).lower()
    if any(marker in text for marker in _NO_RECORD_MARKERS):
        return UpstreamSignal.no_record
    if any(marker in text for marker in _NO_RESULT_MARKERS):
        return UpstreamSignal.no_result
    if exc.status == 429:
        return UpstreamSignal.rate_limited
    if exc.status in (401, 403):
        return UpstreamSignal.unauthorized
    return None
