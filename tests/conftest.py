"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path
from typing import List

import fakeredis.aioredis
import pytest
import pytest_asyncio

# Add src directory to Python path for imports
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from common.schemas import JobSnapshot, Segment, TranslationConfig
from translator.file_job_store import FileJobStore
from translator.redis_job_store import RedisJobStore


@pytest_asyncio.fixture
async def fake_redis_client():
    """
    Fake Redis client using fakeredis for realistic Redis behavior.

    Provides a real Redis-like interface without requiring a Redis server.
    """
    fake_redis = fakeredis.aioredis.FakeRedis(decode_responses=True, encoding="utf-8")
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest_asyncio.fixture
async def redis_job_store(fake_redis_client):
    """RedisJobStore backed by fakeredis."""
    yield RedisJobStore(client=fake_redis_client, max_entries=3, ttl_days=30)


@pytest.fixture
def file_job_store(tmp_path):
    """FileJobStore writing into a temporary directory."""
    return FileJobStore(storage_path=str(tmp_path / "jobs"), max_entries=3, ttl_days=30)


@pytest.fixture
def sample_segments() -> List[Segment]:
    """A short transcript with sentence ends."""
    return [
        Segment(start="0:01", text="Hello world."),
        Segment(start="0:05", text="How are you"),
        Segment(start="0:09", text="doing today?"),
        Segment(start="0:14", text="Goodbye!"),
    ]


@pytest.fixture
def make_snapshot():
    """Factory for JobSnapshot instances."""

    def _make(session_key: str = "abc123_Korean", **overrides) -> JobSnapshot:
        data = {
            "session_key": session_key,
            "content_id": session_key.split("_")[0],
            "target_lang": "Korean",
            "translations": [Segment(start="0:01", text="안녕")],
        }
        data.update(overrides)
        return JobSnapshot(**data)

    return _make


@pytest.fixture
def fast_config() -> TranslationConfig:
    """Job config without delays, for orchestrator tests."""
    return TranslationConfig(
        soft_token_limit=10,
        hard_token_limit=20,
        max_retries=2,
        retry_base_delay=0.0,
        inter_chunk_delay=0.0,
        context_segments=3,
        thinking_level="minimal",
        resume_enabled=True,
    )
