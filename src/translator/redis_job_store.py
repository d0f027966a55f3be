"""Redis-backed job store."""

import logging
from typing import List, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from common.config import settings
from common.schemas import JobSnapshot, SnapshotMetadata
from common.utils import DateTimeUtils
from translator.job_store import JobStore

logger = logging.getLogger(__name__)

SNAPSHOT_KEY_PREFIX = "snapshot:"
INDEX_KEY = "snapshot:index"
INDEX_META_KEY = "snapshot:index:meta"

SECONDS_PER_DAY = 24 * 60 * 60


class RedisJobStore(JobStore):
    """
    Stores snapshots as JSON strings under ``snapshot:{session_key}``.

    The index is a sorted set scored by save time plus a hash holding each
    entry's metadata. Snapshot keys carry a Redis TTL of ``ttl_days``; index
    entries older than that are pruned when listing.
    """

    def __init__(
        self,
        client: Optional[Redis] = None,
        redis_url: Optional[str] = None,
        max_entries: Optional[int] = None,
        ttl_days: Optional[int] = None,
    ):
        """
        Initialize the store.

        Args:
            client: Existing Redis client (e.g. a fakeredis instance)
            redis_url: URL used by connect() when no client is given
            max_entries: Maximum number of index entries (defaults to settings)
            ttl_days: Snapshot lifetime in days (defaults to settings)
        """
        self.client: Optional[Redis] = client
        self.connected: bool = client is not None
        self.redis_url = redis_url or settings.redis_url
        self.max_entries = (
            max_entries if max_entries is not None else settings.snapshot_max_entries
        )
        self.ttl_days = ttl_days if ttl_days is not None else settings.snapshot_ttl_days

    async def connect(self) -> None:
        """Establish the Redis connection if none was injected."""
        if self.client is not None:
            return

        try:
            self.client = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=10,
            )
            await self.client.ping()
            self.connected = True
            logger.info("✅ Connected to Redis successfully")
        except RedisError as e:
            logger.error(f"❌ Failed to connect to Redis: {e}")
            self.connected = False
            raise

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        if self.client is None:
            return
        try:
            await self.client.aclose()
        except RedisError as e:
            logger.warning(f"Error closing Redis client: {e}")
        finally:
            self.client = None
            self.connected = False
            logger.info("Disconnected from Redis")

    def _require_client(self) -> Redis:
        if self.client is None:
            raise RuntimeError("RedisJobStore is not connected")
        return self.client

    @staticmethod
    def _get_snapshot_key(session_key: str) -> str:
        return f"{SNAPSHOT_KEY_PREFIX}{session_key}"

    @property
    def _ttl_seconds(self) -> int:
        return self.ttl_days * SECONDS_PER_DAY

    async def load(self, session_key: str) -> Optional[JobSnapshot]:
        client = self._require_client()
        raw = await client.get(self._get_snapshot_key(session_key))
        if raw is None:
            return None

        snapshot = JobSnapshot.model_validate_json(raw)
        if DateTimeUtils.is_older_than(snapshot.timestamp, self.ttl_days):
            logger.info(f"🗑️  Snapshot expired, removing: {session_key}")
            await self.delete(session_key)
            return None
        return snapshot

    async def save_full(self, session_key: str, snapshot: JobSnapshot) -> None:
        """Write the snapshot and register it in the index."""
        client = self._require_client()
        metadata = snapshot.to_metadata()

        async with client.pipeline(transaction=True) as pipe:
            pipe.set(
                self._get_snapshot_key(session_key),
                snapshot.model_dump_json(),
                ex=self._ttl_seconds,
            )
            pipe.zadd(INDEX_KEY, {session_key: snapshot.timestamp.timestamp()})
            pipe.hset(INDEX_META_KEY, session_key, metadata.model_dump_json())
            await pipe.execute()

        # Keep only the newest max_entries sessions
        overflow = await client.zcard(INDEX_KEY) - self.max_entries
        if overflow > 0:
            evicted = await client.zrange(INDEX_KEY, 0, overflow - 1)
            for evicted_key in evicted:
                await self._remove(evicted_key)
                logger.debug(f"Evicted snapshot from index: {evicted_key}")

        logger.info(
            f"💾 Saved snapshot: {session_key} "
            f"({len(snapshot.translations)} segments, partial={snapshot.is_partial})"
        )

    async def save_partial(self, session_key: str, snapshot: JobSnapshot) -> None:
        """Write the snapshot data only; the index is left untouched."""
        client = self._require_client()
        await client.set(
            self._get_snapshot_key(session_key),
            snapshot.model_dump_json(),
            ex=self._ttl_seconds,
        )
        logger.debug(
            f"💾 Saved partial snapshot: {session_key} "
            f"({snapshot.completed_chunk_count} chunks)"
        )

    async def _remove(self, session_key: str) -> int:
        client = self._require_client()
        async with client.pipeline(transaction=True) as pipe:
            pipe.delete(self._get_snapshot_key(session_key))
            pipe.zrem(INDEX_KEY, session_key)
            pipe.hdel(INDEX_META_KEY, session_key)
            results = await pipe.execute()
        return sum(results)

    async def delete(self, session_key: str) -> bool:
        removed = await self._remove(session_key) > 0
        if removed:
            logger.info(f"✅ Deleted snapshot: {session_key}")
        return removed

    async def list_all(self) -> List[SnapshotMetadata]:
        """List index entries newest first, pruning expired ones."""
        client = self._require_client()
        cutoff = (
            DateTimeUtils.get_current_utc_datetime().timestamp() - self._ttl_seconds
        )

        expired = await client.zrangebyscore(INDEX_KEY, "-inf", f"({cutoff}")
        for session_key in expired:
            await self._remove(session_key)
        if expired:
            logger.info(f"🗑️  Expired {len(expired)} snapshot(s)")

        session_keys = await client.zrevrange(INDEX_KEY, 0, -1)
        if not session_keys:
            return []

        raw_entries = await client.hmget(INDEX_META_KEY, session_keys)
        return [
            SnapshotMetadata.model_validate_json(raw)
            for raw in raw_entries
            if raw is not None
        ]

    async def clear(self) -> None:
        client = self._require_client()
        # Partial-only snapshots are not indexed, so scan the prefix
        keys = [key async for key in client.scan_iter(match=f"{SNAPSHOT_KEY_PREFIX}*")]
        if keys:
            await client.delete(*keys)
        logger.info("✅ Cleared all snapshots")
