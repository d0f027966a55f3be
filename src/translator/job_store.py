"""Persistence contract for job snapshots."""

from abc import ABC, abstractmethod
from typing import List, Optional

from common.schemas import JobSnapshot, SnapshotMetadata


class JobStore(ABC):
    """
    Loads and saves job snapshots keyed by session.

    The orchestrator never assumes it is the only writer: snapshots may be
    imported or removed by other parties at any time.
    """

    @abstractmethod
    async def load(self, session_key: str) -> Optional[JobSnapshot]:
        """Return the snapshot of a session, or None."""

    @abstractmethod
    async def save_full(self, session_key: str, snapshot: JobSnapshot) -> None:
        """Save a snapshot and register it in the index of known sessions."""

    @abstractmethod
    async def save_partial(self, session_key: str, snapshot: JobSnapshot) -> None:
        """Update a snapshot's data without touching the index."""

    @abstractmethod
    async def delete(self, session_key: str) -> bool:
        """Remove a snapshot and its index entry. Returns True if it existed."""

    @abstractmethod
    async def list_all(self) -> List[SnapshotMetadata]:
        """List index entries, newest first."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every snapshot and the index."""
