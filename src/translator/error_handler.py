"""Error presentation for failed and aborted translation jobs."""

import logging
from typing import Optional, Tuple

from common.errors import ErrorKind, classify_error

logger = logging.getLogger(__name__)

STATUS_ABORTED = "aborted"
STATUS_QUOTA_EXCEEDED = "quota_exceeded"
STATUS_MODEL_OVERLOADED = "model_overloaded"
STATUS_ERROR = "error"

QUOTA_EXCEEDED_MESSAGE = (
    "API quota exceeded or key not authorized. "
    "Check the API key and billing status, then try again."
)
MODEL_OVERLOADED_MESSAGE = (
    "The model is overloaded or unreachable. Please try again in a moment."
)


def describe_job_error(error: BaseException) -> Tuple[str, Optional[str]]:
    """
    Map a job error to a caller-facing status and message.

    Aborts are silent. Quota and overload errors get actionable messages.
    Anything else surfaces its raw message.

    Args:
        error: Exception that ended the job

    Returns:
        (status, message) where message is None for aborts
    """
    kind = classify_error(error)

    if kind == ErrorKind.CANCELLED:
        return STATUS_ABORTED, None

    if kind == ErrorKind.QUOTA_EXCEEDED:
        logger.error(f"❌ Quota exceeded: {error}")
        return STATUS_QUOTA_EXCEEDED, QUOTA_EXCEEDED_MESSAGE

    if kind == ErrorKind.MODEL_OVERLOADED:
        logger.error(f"❌ Model overloaded after retries: {error}")
        return STATUS_MODEL_OVERLOADED, MODEL_OVERLOADED_MESSAGE

    logger.error(f"❌ Unexpected error processing translation: {error}")
    return STATUS_ERROR, str(error)
