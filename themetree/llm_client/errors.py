from __future__ import annotations

import asyncio
import subprocess
from enum import Enum
from typing import List, Optional

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ThemeTreeError(Exception):
    """Base class for themetree errors."""


class ConfigError(ThemeTreeError):
    pass


class ModelCallError(ThemeTreeError):
    """A call to the external model failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientModelError(ModelCallError):
    """Timeout, connection reset, 5xx, rate limit."""


class PermanentModelError(ModelCallError):
    """Authentication, authorization, malformed request."""


class ResponseShapeError(ThemeTreeError):
    """The model answered but no valid structured payload could be recovered."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None, preview: str = ""):
        super().__init__(message)
        self.missing_fields = missing_fields or []
        self.preview = preview


class QueueClearedError(ThemeTreeError):
    pass


# ---------------------------------------------------------------------------
# Failure classification
# ---------------------------------------------------------------------------

class FailureKind(str, Enum):
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


RATE_LIMIT_MARKERS = (
    "rate_limit",
    "rate limit",
    "too many requests",
    "quota exceeded",
    "resource_exhausted",
    "overloaded",
    "throttled",
    "429",
)

_RETRYABLE_STATUS = {408, 409, 425, 429}
_TRANSIENT_NAME_MARKERS = ("Timeout", "Connection", "ServiceUnavailable", "InternalServer", "RateLimit", "Overloaded")


def _status_code(error: BaseException) -> Optional[int]:
    code = getattr(error, "status_code", None)
    if code is None:
        response = getattr(error, "response", None)
        code = getattr(response, "status_code", None)
    return code if isinstance(code, int) else None


def is_rate_limit_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def classify_failure(error: BaseException) -> FailureKind:
    """
    Decide whether a failed model call may be retried.

    Pure function of the error: explicit themetree error types first, then
    HTTP status codes exposed by provider SDKs, then timeout/connection
    errors, then rate-limit wording. Anything unrecognised is permanent.
    """
    if isinstance(error, TransientModelError):
        return FailureKind.RETRYABLE
    if isinstance(error, (PermanentModelError, ResponseShapeError, QueueClearedError, ConfigError)):
        return FailureKind.PERMANENT

    code = _status_code(error)
    if code is not None:
        if code in _RETRYABLE_STATUS or code >= 500:
            return FailureKind.RETRYABLE
        if 400 <= code < 500:
            return FailureKind.PERMANENT

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError, subprocess.TimeoutExpired)):
        return FailureKind.RETRYABLE
    if any(marker in type(error).__name__ for marker in _TRANSIENT_NAME_MARKERS):
        return FailureKind.RETRYABLE
    if is_rate_limit_message(str(error)):
        return FailureKind.RETRYABLE

    return FailureKind.PERMANENT


def to_model_error(error: BaseException) -> ModelCallError:
    """Wrap a provider SDK exception in the matching themetree error."""
    if isinstance(error, ModelCallError):
        return error
    code = _status_code(error)
    message = f"{type(error).__name__}: {error}"
    if classify_failure(error) == FailureKind.RETRYABLE:
        return TransientModelError(message, status_code=code)
    return PermanentModelError(message, status_code=code)
