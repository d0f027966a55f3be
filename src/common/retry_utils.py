"""Retry utility with abort-aware exponential backoff for transient API errors."""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from common.cancellation import CancellationToken
from common.errors import TaskCancelledError, is_retryable_error

logger = logging.getLogger(__name__)

# Type variable for generic operation return type
T = TypeVar("T")

RetryCallback = Callable[[int, float, Exception], Any]


def calculate_exponential_backoff_delay(
    base_delay: float,
    attempt: int,
    exponential_base: int = 2,
) -> float:
    """
    Calculate the back-off delay for a retry attempt.

    Args:
        base_delay: Base delay in seconds
        attempt: Retry attempt number (1 for the first retry)
        exponential_base: Base for exponential calculation (e.g., 2)

    Returns:
        Delay in seconds: base_delay * exponential_base^attempt
    """
    return base_delay * (exponential_base**attempt)


class RetryExecutor:
    """
    Runs a fallible async operation with exponential back-off.

    The executor knows nothing about the operation it retries. Which errors are
    retried is decided by the injected ``is_retryable`` classifier. Retry state
    is per call to ``run``.

    Example:
        executor = RetryExecutor(max_retries=3, base_delay=1.0)
        result = await executor.run(
            lambda: translator.translate_chunk(chunk, context, token),
            cancellation_token=token,
        )
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    ):
        """
        Initialize the executor.

        Args:
            max_retries: Maximum number of retry attempts (after initial try)
            base_delay: Base delay in seconds for the back-off schedule
            is_retryable: Classifier deciding whether an error is retried
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {max_retries}")
        if base_delay < 0:
            raise ValueError(f"base_delay must be non-negative, got {base_delay}")

        self.max_retries = max_retries
        self.base_delay = base_delay
        self.is_retryable = is_retryable

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: Optional[RetryCallback] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> T:
        """
        Call ``operation`` until it succeeds, fails permanently or is cancelled.

        Args:
            operation: Zero-argument callable returning an awaitable
            on_retry: Optional callback ``(attempt, delay, error)``, sync or async,
                invoked before each back-off sleep
            cancellation_token: Optional token checked before every attempt and
                during every back-off sleep

        Returns:
            Result of the first successful attempt

        Raises:
            TaskCancelledError: If the token is cancelled
            Exception: The operation's error when it is not retryable or the
                retry budget is exhausted
        """
        retry_count = 0

        while True:
            if cancellation_token is not None:
                cancellation_token.raise_if_cancelled()

            try:
                return await operation()
            except TaskCancelledError:
                raise
            except Exception as e:
                if cancellation_token is not None and cancellation_token.is_cancelled:
                    raise TaskCancelledError(
                        f"Task cancelled after error: {e}"
                    ) from e

                if not self.is_retryable(e):
                    logger.error(f"❌ Permanent error: {e}. Not retrying.")
                    raise

                if retry_count >= self.max_retries:
                    logger.error(
                        f"❌ Max retries ({self.max_retries}) exceeded. Last error: {e}"
                    )
                    raise

                retry_count += 1
                delay = calculate_exponential_backoff_delay(self.base_delay, retry_count)

                logger.warning(
                    f"⚠️  Transient error: {e}. "
                    f"Retry {retry_count}/{self.max_retries} in {delay:.2f}s..."
                )

                if on_retry is not None:
                    callback_result = on_retry(retry_count, delay, e)
                    if inspect.isawaitable(callback_result):
                        await callback_result

                if cancellation_token is not None:
                    await cancellation_token.sleep(delay)
                else:
                    await asyncio.sleep(delay)
