"""JSON file job store with an index of known sessions."""

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from common.config import settings
from common.schemas import JobSnapshot, SnapshotMetadata
from common.utils import DateTimeUtils, StringUtils
from translator.job_store import JobStore

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"


class FileJobStore(JobStore):
    """
    Stores one ``{session}.snapshot.json`` file per session plus ``index.json``.

    The index lists snapshot metadata newest first and is capped at
    ``max_entries``. Entries older than ``ttl_days`` are expired when loading
    or listing.
    """

    def __init__(
        self,
        storage_path: Optional[str] = None,
        max_entries: Optional[int] = None,
        ttl_days: Optional[int] = None,
    ):
        """
        Initialize the store and create its directory.

        Args:
            storage_path: Directory for snapshot files (defaults to settings)
            max_entries: Maximum number of index entries (defaults to settings)
            ttl_days: Snapshot lifetime in days (defaults to settings)
        """
        self._storage_dir = Path(storage_path or settings.job_store_path)
        self._storage_dir.mkdir(parents=True, exist_ok=True)
        self.max_entries = (
            max_entries if max_entries is not None else settings.snapshot_max_entries
        )
        self.ttl_days = ttl_days if ttl_days is not None else settings.snapshot_ttl_days

    def get_snapshot_path(self, session_key: str) -> Path:
        filename = f"{StringUtils.to_safe_filename(session_key)}.snapshot.json"
        return self._storage_dir / filename

    @property
    def index_path(self) -> Path:
        return self._storage_dir / INDEX_FILENAME

    def _read_index(self) -> List[SnapshotMetadata]:
        if not self.index_path.exists():
            return []

        try:
            raw_entries = json.loads(self.index_path.read_text(encoding="utf-8"))
            return [SnapshotMetadata.model_validate(entry) for entry in raw_entries]
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning(f"⚠️  Corrupted snapshot index, starting fresh: {e}")
            return []

    def _write_index(self, entries: List[SnapshotMetadata]) -> None:
        payload = [entry.model_dump(mode="json") for entry in entries]
        self.index_path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"
        )

    def _write_snapshot(self, session_key: str, snapshot: JobSnapshot) -> None:
        snapshot_path = self.get_snapshot_path(session_key)
        try:
            snapshot_path.write_text(
                snapshot.model_dump_json(indent=2), encoding="utf-8"
            )
        except OSError as e:
            logger.error(f"❌ Failed to save snapshot: {snapshot_path} - {e}")
            raise IOError(f"Failed to save snapshot: {e}") from e

    def _remove_snapshot_file(self, session_key: str) -> bool:
        snapshot_path = self.get_snapshot_path(session_key)
        if not snapshot_path.exists():
            return False
        snapshot_path.unlink()
        return True

    def _is_expired(self, metadata: SnapshotMetadata) -> bool:
        return DateTimeUtils.is_older_than(metadata.timestamp, self.ttl_days)

    async def load(self, session_key: str) -> Optional[JobSnapshot]:
        """
        Load the snapshot of a session.

        Expired snapshots are deleted and reported as missing.

        Raises:
            ValueError: If the snapshot file is corrupted
        """
        snapshot_path = self.get_snapshot_path(session_key)
        if not snapshot_path.exists():
            return None

        try:
            snapshot = JobSnapshot.model_validate_json(
                snapshot_path.read_text(encoding="utf-8")
            )
        except ValidationError as e:
            logger.error(f"❌ Corrupted snapshot file: {snapshot_path} - {e}")
            raise ValueError(f"Corrupted snapshot file: {e}") from e

        if DateTimeUtils.is_older_than(snapshot.timestamp, self.ttl_days):
            logger.info(f"🗑️  Snapshot expired, removing: {session_key}")
            await self.delete(session_key)
            return None

        logger.info(
            f"✅ Loaded snapshot: {session_key} "
            f"({snapshot.completed_chunk_count} chunks, partial={snapshot.is_partial})"
        )
        return snapshot

    async def save_full(self, session_key: str, snapshot: JobSnapshot) -> None:
        """Write the snapshot and move its entry to the front of the index."""
        self._write_snapshot(session_key, snapshot)

        entries = [
            entry for entry in self._read_index() if entry.session_key != session_key
        ]
        entries.insert(0, snapshot.to_metadata())

        evicted = entries[self.max_entries :]
        entries = entries[: self.max_entries]
        for entry in evicted:
            self._remove_snapshot_file(entry.session_key)
            logger.debug(f"Evicted snapshot from index: {entry.session_key}")

        self._write_index(entries)
        logger.info(
            f"💾 Saved snapshot: {session_key} "
            f"({len(snapshot.translations)} segments, partial={snapshot.is_partial})"
        )

    async def save_partial(self, session_key: str, snapshot: JobSnapshot) -> None:
        """Write the snapshot data only; the index is left untouched."""
        self._write_snapshot(session_key, snapshot)
        logger.debug(
            f"💾 Saved partial snapshot: {session_key} "
            f"({snapshot.completed_chunk_count} chunks)"
        )

    async def delete(self, session_key: str) -> bool:
        removed = self._remove_snapshot_file(session_key)

        entries = self._read_index()
        remaining = [entry for entry in entries if entry.session_key != session_key]
        if len(remaining) != len(entries):
            self._write_index(remaining)
            removed = True

        if removed:
            logger.info(f"✅ Deleted snapshot: {session_key}")
        return removed

    async def list_all(self) -> List[SnapshotMetadata]:
        """List index entries newest first, expiring stale ones."""
        entries = self._read_index()
        fresh = [entry for entry in entries if not self._is_expired(entry)]

        if len(fresh) != len(entries):
            for entry in entries:
                if self._is_expired(entry):
                    self._remove_snapshot_file(entry.session_key)
            self._write_index(fresh)
            logger.info(f"🗑️  Expired {len(entries) - len(fresh)} snapshot(s)")

        return sorted(fresh, key=lambda entry: entry.timestamp, reverse=True)

    async def clear(self) -> None:
        for snapshot_path in self._storage_dir.glob("*.snapshot.json"):
            snapshot_path.unlink()
        if self.index_path.exists():
            self.index_path.unlink()
        logger.info("✅ Cleared all snapshots")
