"""Error taxonomy and classification for translation jobs."""

import asyncio
import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Classification of errors raised while running a job."""

    CANCELLED = "CANCELLED"
    MODEL_OVERLOADED = "MODEL_OVERLOADED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    GENERIC = "GENERIC"


class TranslationError(Exception):
    """Base class for translation job errors."""

    kind: ErrorKind = ErrorKind.GENERIC


class TaskCancelledError(TranslationError):
    """
    Raised when a task observes that it was cancelled or preempted.

    This is an expected control-flow outcome, not a failure. The orchestrator
    turns it into an Aborted result.
    """

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Task cancelled"):
        super().__init__(message)


class ModelOverloadedError(TranslationError):
    """Upstream model is rate limited or unavailable. Retryable."""

    kind = ErrorKind.MODEL_OVERLOADED

    def __init__(self, message: str = "MODEL_OVERLOADED"):
        super().__init__(message)


class QuotaExceededError(TranslationError):
    """Authorization or billing failure. Not retryable."""

    kind = ErrorKind.QUOTA_EXCEEDED

    def __init__(self, message: str = "QUOTA_EXCEEDED"):
        super().__init__(message)


class MalformedResponseError(TranslationError):
    """
    Translation payload could not be parsed as structured output.

    Usually a truncated-stream artifact, so it is retried.
    """

    kind = ErrorKind.MALFORMED_RESPONSE


# HTTP status codes signalling an overloaded or unavailable upstream
OVERLOADED_STATUS_CODES = {429, 503, 529}
# HTTP status codes signalling authorization or billing problems
QUOTA_STATUS_CODES = {401, 403}


def classify_http_error(status_code: int, message: Optional[str] = None) -> TranslationError:
    """
    Build a classified error from an upstream HTTP failure.

    Args:
        status_code: HTTP status code of the failed response
        message: Error message from the response body, if any

    Returns:
        ModelOverloadedError, QuotaExceededError or a generic TranslationError
    """
    message = message or ""
    lowered = message.lower()

    if status_code in OVERLOADED_STATUS_CODES or "overloaded" in lowered:
        if "insufficient_quota" in lowered:
            return QuotaExceededError(message)
        return ModelOverloadedError()

    if status_code in QUOTA_STATUS_CODES:
        return QuotaExceededError()

    return TranslationError(message or f"API request failed: {status_code}")


def classify_error(error: BaseException) -> ErrorKind:
    """
    Determine the kind of an error.

    Network-level failures (connection refused, timeouts) count as an
    unavailable upstream.

    Args:
        error: Exception to classify

    Returns:
        ErrorKind for the error
    """
    if isinstance(error, TranslationError):
        return error.kind

    if isinstance(error, asyncio.CancelledError):
        return ErrorKind.CANCELLED

    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return ErrorKind.MODEL_OVERLOADED

    if "overloaded" in str(error).lower():
        return ErrorKind.MODEL_OVERLOADED

    return ErrorKind.GENERIC


def is_retryable_error(error: BaseException) -> bool:
    """
    Default retry classifier: only overload and malformed-response errors retry.

    Args:
        error: Exception to check

    Returns:
        True if the error should be retried, False otherwise
    """
    return classify_error(error) in (
        ErrorKind.MODEL_OVERLOADED,
        ErrorKind.MALFORMED_RESPONSE,
    )
