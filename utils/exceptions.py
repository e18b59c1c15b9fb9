"""
Custom exception hierarchy.

Every project error is a ``StudioError`` carrying an ``ErrorKind``,
an HTTP-style ``status``, a machine ``code`` and a kind-specific
``details`` payload (attempts, failures, ...).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    CONFIGURATION         = "configuration"
    VALIDATION            = "validation"
    NOT_FOUND             = "not_found"
    UPSTREAM_RETRYABLE    = "upstream_retryable"
    UPSTREAM_FATAL        = "upstream_fatal"
    FETCH                 = "fetch"
    FETCH_TIMEOUT         = "fetch_timeout"
    STORAGE               = "storage"
    CASCADE_EXHAUSTED     = "cascade_exhausted"
    BATCH_TOTAL_FAILURE   = "batch_total_failure"


class StudioError(Exception):
    """Base for every project exception."""

    kind: ErrorKind = ErrorKind.UPSTREAM_FATAL
    default_status: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status if status is not None else self.default_status
        self.code = code or self.default_code
        self.details: Dict[str, Any] = dict(details or {})

    @property
    def http_status(self) -> int:
        """Status clamped into the 4xx/5xx range."""
        if isinstance(self.status, int) and 400 <= self.status <= 599:
            return self.status
        return 500

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status": self.status,
            "code": self.code,
            **self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, status={self.status}, code={self.code!r})"


class ConfigurationError(StudioError):
    """Invalid or missing configuration (credentials, storage)."""

    kind = ErrorKind.CONFIGURATION
    default_status = 503
    default_code = "NOT_CONFIGURED"


class ValidationError(StudioError):
    """Malformed request input."""

    kind = ErrorKind.VALIDATION
    default_status = 400
    default_code = "INVALID_REQUEST"


class NotFoundError(StudioError):
    """Referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND
    default_status = 404
    default_code = "NOT_FOUND"


class UpstreamError(StudioError):
    """The generative model endpoint rejected or failed a call."""

    kind = ErrorKind.UPSTREAM_FATAL
    default_status = 502
    default_code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        model: Optional[str] = None,
    ) -> None:
        super().__init__(message, status, code, details)
        self.model = model
        self.retryable = False

    def mark(self, retryable: bool) -> "UpstreamError":
        self.retryable = retryable
        self.kind = ErrorKind.UPSTREAM_RETRYABLE if retryable else ErrorKind.UPSTREAM_FATAL
        return self


class FetchError(StudioError):
    """Source image could not be retrieved or is unusable."""

    kind = ErrorKind.FETCH
    default_status = 422
    default_code = "IMAGE_FETCH_FAILED"


class FetchTimeoutError(FetchError):
    kind = ErrorKind.FETCH_TIMEOUT
    default_status = 504
    default_code = "IMAGE_FETCH_TIMEOUT"


class StorageError(StudioError):
    """Object storage upload failed."""

    kind = ErrorKind.STORAGE
    default_status = 502
    default_code = "STORAGE_UPLOAD_FAILED"


class CascadeExhaustedError(StudioError):
    """Every model candidate failed with a retryable error."""

    kind = ErrorKind.CASCADE_EXHAUSTED
    default_status = 502
    default_code = "GENERATION_FAILED"

    def __init__(
        self,
        message: str,
        attempts: List[Dict[str, str]],
        quota: bool = False,
    ) -> None:
        super().__init__(
            message,
            status=429 if quota else 502,
            code="RESOURCE_EXHAUSTED" if quota else "GENERATION_FAILED",
            details={"attempts": list(attempts)},
        )
        self.attempts = list(attempts)
        self.quota = quota


class BatchFailureError(StudioError):
    """Zero angles of a generation batch succeeded."""

    kind = ErrorKind.BATCH_TOTAL_FAILURE
    default_status = 502
    default_code = "NO_ANGLES_GENERATED"

    def __init__(
        self,
        message: str,
        failures: List[Dict[str, Any]],
        status: int = 502,
    ) -> None:
        super().__init__(message, status=status, details={"failures": list(failures)})
        self.failures = list(failures)
