"""Per-job single-lane queue for partial snapshot writes."""

import asyncio
import logging
from typing import Optional

from common.schemas import JobSnapshot
from translator.job_store import JobStore

logger = logging.getLogger(__name__)


class PartialSaveQueue:
    """
    Serializes partial snapshot writes of one job.

    Each write is chained after the previous one (a tail task), so snapshots
    reach the store in the order they were enqueued while the caller carries
    on without waiting. Writes go through ``save_full`` until one of them
    succeeds, so the session shows up in the index; later writes use
    ``save_partial``.
    """

    def __init__(self, job_store: JobStore, session_key: str, index_registered: bool = False):
        """
        Args:
            job_store: Store receiving the snapshots
            session_key: Session the job belongs to
            index_registered: True when the session is already indexed (e.g.
                the job resumed from existing progress)
        """
        self.job_store = job_store
        self.session_key = session_key
        self.index_registered = index_registered
        self._tail: Optional[asyncio.Task] = None
        self.saved_count = 0
        self.failed_count = 0

    def enqueue(self, snapshot: JobSnapshot) -> asyncio.Task:
        """
        Queue a snapshot for writing after every previously queued one.

        The snapshot is copied so later changes by the caller do not leak in.
        """
        captured = snapshot.model_copy(deep=True)
        self._tail = asyncio.create_task(self._write_after(self._tail, captured))
        return self._tail

    async def _write_after(
        self, previous: Optional[asyncio.Task], snapshot: JobSnapshot
    ) -> None:
        if previous is not None:
            await asyncio.wait({previous})

        # Decided here, not at enqueue, so a failed full save is retried
        use_full_save = not self.index_registered
        try:
            if use_full_save:
                await self.job_store.save_full(self.session_key, snapshot)
                self.index_registered = True
            else:
                await self.job_store.save_partial(self.session_key, snapshot)
            self.saved_count += 1
        except Exception as e:
            self.failed_count += 1
            logger.warning(
                f"⚠️  Failed to save partial snapshot for {self.session_key} "
                f"({snapshot.completed_chunk_count} chunks): {e}. Continuing..."
            )

    async def drain(self) -> None:
        """Wait until every queued write has finished."""
        if self._tail is not None:
            await asyncio.wait({self._tail})
