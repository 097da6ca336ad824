"""Typed errors raised by the extraction pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure categories surfaced to callers."""

    CONFIGURATION = "configuration"
    DAILY_QUOTA_EXCEEDED = "daily_quota_exceeded"
    RATE_LIMIT_EXCEEDED_AFTER_RETRIES = "rate_limit_exceeded_after_retries"
    TRANSPORT_FAILURE = "transport_failure"
    NETWORK_FAILURE = "network_failure"
    EMPTY_RESPONSE = "empty_response"
    UNPARSEABLE_RESPONSE = "unparseable_response"


class ExtractionError(Exception):
    """Unrecoverable extraction failure.

    Carries enough context (status code, raw error body, retry hint) for the
    caller to show an actionable message.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.body = body
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )


class ConfigurationError(ExtractionError, ValueError):
    """Missing or invalid configuration detected at startup."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.CONFIGURATION, message)
