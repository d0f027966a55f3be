"""Cooperative cancellation token shared by every suspendable call of a job."""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from common.errors import TaskCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Checkable cancellation flag with a wait primitive that ends early on cancel.

    A token is created per task and flipped by the orchestrator when the task
    is preempted or aborted. Code holding the token observes it at its own
    check points.
    """

    def __init__(self):
        """Initialize an un-cancelled token."""
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        """Whether cancel() has been called."""
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        """
        Flip the token. Idempotent: the first reason wins.

        Args:
            reason: Optional human-readable cancellation reason
        """
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise TaskCancelledError if the token was cancelled."""
        if self._event.is_set():
            raise TaskCancelledError(self._message())

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    async def sleep(self, delay: float) -> None:
        """
        Sleep for ``delay`` seconds unless cancelled first.

        Args:
            delay: Sleep duration in seconds

        Raises:
            TaskCancelledError: If the token is or becomes cancelled
        """
        self.raise_if_cancelled()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise TaskCancelledError(self._message())

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Run an awaitable, abandoning it as soon as the token is cancelled.

        Used around in-flight network calls whose transport can be aborted.

        Args:
            awaitable: Coroutine or future to run

        Returns:
            Result of the awaitable

        Raises:
            TaskCancelledError: If the token is cancelled before it finishes
        """
        operation = asyncio.ensure_future(awaitable)
        if self.is_cancelled:
            operation.cancel()
            raise TaskCancelledError(self._message())

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {operation, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            operation.cancel()
            raise
        finally:
            waiter.cancel()

        if operation.done():
            return operation.result()

        operation.cancel()
        try:
            await operation
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Cancelled operation finished with error: {e}")
        raise TaskCancelledError(self._message())

    def _message(self) -> str:
        if self.reason:
            return f"Task cancelled: {self.reason}"
        return "Task cancelled"
