"""Data structures for translation task processing."""

from typing import List, Optional

from common.schemas import JobStatus, Segment, SourceChunkCheckpoint, TokenUsage


class ResumeResolution:
    """Where to resume a job and which cached translations remain valid."""

    def __init__(
        self,
        start_chunk_index: int,
        initial_translations: List[Segment],
        reason: str,
        used_checkpoint_fallback: bool = False,
        used_timestamp_fallback: bool = False,
        source_chunk_checkpoints: Optional[List[SourceChunkCheckpoint]] = None,
    ):
        self.start_chunk_index = start_chunk_index
        self.initial_translations = initial_translations
        self.reason = reason
        self.used_checkpoint_fallback = used_checkpoint_fallback
        self.used_timestamp_fallback = used_timestamp_fallback
        self.source_chunk_checkpoints = source_chunk_checkpoints or []


class ChunkContext:
    """Prompt context handed to the chunk translator."""

    def __init__(
        self,
        target_lang: str,
        source_lang: str = "Auto",
        thinking_level: str = "minimal",
        previous_context: Optional[str] = None,
        chunk_index: int = 0,
        total_chunks: int = 1,
    ):
        self.target_lang = target_lang
        self.source_lang = source_lang
        self.thinking_level = thinking_level
        self.previous_context = previous_context
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks


class ChunkTranslationResult:
    """Segments and token usage returned for one request."""

    def __init__(self, segments: List[Segment], usage: Optional[TokenUsage] = None):
        self.segments = segments
        self.usage = usage or TokenUsage()


class JobOutcome:
    """Terminal result of one job, delivered through its handle."""

    def __init__(
        self,
        status: JobStatus,
        task_id: str,
        session_key: str,
        segments: Optional[List[Segment]] = None,
        usage: Optional[TokenUsage] = None,
        error: Optional[str] = None,
        error_code: Optional[str] = None,
        from_cache: bool = False,
    ):
        self.status = status
        self.task_id = task_id
        self.session_key = session_key
        self.segments = segments or []
        self.usage = usage or TokenUsage()
        self.error = error
        self.error_code = error_code
        self.from_cache = from_cache
