"""Shared Pydantic schemas for the resumable translation service."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from common.config import settings
from common.utils import DateTimeUtils, StringUtils


class TaskKind(str, Enum):
    """Kind of work a task performs."""

    TRANSLATE = "translate"
    REFINE = "refine"


class JobStatus(str, Enum):
    """Terminal and running states of a job."""

    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class EventType(str, Enum):
    """Types of events emitted while a job runs."""

    CHUNK_COMPLETED = "job.chunk.completed"
    RETRYING = "job.retrying"
    COMPLETED = "job.completed"
    ABORTED = "job.aborted"
    FAILED = "job.failed"


class Segment(BaseModel):
    """A minimal timed unit of source or translated text."""

    start: str = Field(..., description="Timecode as H:MM:SS, M:SS or S")
    text: str = Field(..., description="Segment text")
    id: Optional[str] = Field(
        None, description="Optional anchor id echoed back by the model"
    )

    class Config:
        json_schema_extra = {
            "example": {"start": "1:05", "text": "Hello world", "id": "3"}
        }


class SourceChunkCheckpoint(BaseModel):
    """Content-addressable summary of one planned chunk, used only for matching."""

    chunk_index: int = Field(0, description="Index of the chunk in its plan")
    chunk_fingerprint: str = Field(..., description="Fingerprint of the chunk")
    first_start_sec: Optional[float] = Field(
        None, description="Smallest parsed start time in the chunk"
    )
    last_start_sec: Optional[float] = Field(
        None, description="Largest parsed start time in the chunk"
    )
    segment_count: int = Field(0, description="Number of segments in the chunk")


class TokenUsage(BaseModel):
    """Token counters reported by the model."""

    input_tokens: int = Field(0, description="Prompt tokens")
    output_tokens: int = Field(0, description="Visible completion tokens")
    thinking_tokens: int = Field(0, description="Reasoning tokens")

    @property
    def billable_output_tokens(self) -> int:
        """Output tokens including reasoning, as billed."""
        return self.output_tokens + self.thinking_tokens

    def add(self, other: "TokenUsage") -> None:
        """Accumulate another usage record into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.thinking_tokens += other.thinking_tokens


class SnapshotMetadata(BaseModel):
    """Index entry describing a persisted snapshot."""

    session_key: str = Field(..., description="Session key of the snapshot")
    content_id: str = Field(..., description="Source document identifier")
    title: str = Field("Unknown Video", description="Document title")
    source_lang: str = Field("Auto", description="Source language")
    target_lang: str = Field(..., description="Target language")
    timestamp: datetime = Field(
        default_factory=DateTimeUtils.get_current_utc_datetime,
        description="When the snapshot was written",
    )
    is_refined: bool = Field(False, description="Whether the snapshot was refined")
    is_partial: bool = Field(False, description="Whether the snapshot is partial")


class JobSnapshot(BaseModel):
    """
    Persisted state of a job, complete or partial.

    When ``is_partial`` is true, ``translations`` covers exactly the first
    ``completed_chunk_count`` chunks and ``source_chunk_checkpoints`` holds one
    entry per completed chunk, in order.
    """

    session_key: str = Field(..., description="Session key of the job")
    content_id: str = Field(..., description="Source document identifier")
    translations: List[Segment] = Field(
        default_factory=list, description="Translated segments in order"
    )
    is_partial: bool = Field(False, description="Whether the job is unfinished")
    completed_chunk_count: int = Field(
        0, description="Number of chunks covered by translations"
    )
    transcript_fingerprint: str = Field(
        "", description="Fingerprint of the whole planned source"
    )
    source_chunk_checkpoints: List[SourceChunkCheckpoint] = Field(
        default_factory=list, description="Checkpoints of completed chunks"
    )
    is_refined: bool = Field(False, description="Whether the snapshot was refined")
    title: str = Field("Unknown Video", description="Document title")
    source_lang: str = Field("Auto", description="Source language")
    target_lang: str = Field(..., description="Target language")
    timestamp: datetime = Field(
        default_factory=DateTimeUtils.get_current_utc_datetime,
        description="When the snapshot was written",
    )

    def to_metadata(self) -> SnapshotMetadata:
        """Build the index entry for this snapshot."""
        return SnapshotMetadata(
            session_key=self.session_key,
            content_id=self.content_id,
            title=self.title,
            source_lang=self.source_lang,
            target_lang=self.target_lang,
            timestamp=self.timestamp,
            is_refined=self.is_refined,
            is_partial=self.is_partial,
        )


class TranslationConfig(BaseModel):
    """Per-job configuration. Defaults come from settings."""

    soft_token_limit: int = Field(
        default_factory=lambda: settings.translation_soft_token_limit, gt=0
    )
    hard_token_limit: int = Field(
        default_factory=lambda: settings.translation_hard_token_limit, gt=0
    )
    max_retries: int = Field(
        default_factory=lambda: settings.translation_max_retries, ge=0
    )
    retry_base_delay: float = Field(
        default_factory=lambda: settings.translation_retry_base_delay, ge=0
    )
    inter_chunk_delay: float = Field(
        default_factory=lambda: settings.translation_inter_chunk_delay, ge=0
    )
    context_segments: int = Field(
        default_factory=lambda: settings.translation_context_segments, ge=0
    )
    thinking_level: str = Field(
        default_factory=lambda: settings.translation_thinking_level
    )
    resume_enabled: bool = Field(default_factory=lambda: settings.resume_enabled)

    @model_validator(mode="after")
    def validate_token_limits(self) -> "TranslationConfig":
        """Reject a soft limit above the hard limit."""
        if self.soft_token_limit > self.hard_token_limit:
            raise ValueError(
                f"soft_token_limit ({self.soft_token_limit}) must not exceed "
                f"hard_token_limit ({self.hard_token_limit})"
            )
        return self


class JobEvent(BaseModel):
    """Event emitted while a job runs."""

    event_type: EventType = Field(..., description="Type of event")
    session_key: str = Field(..., description="Session the job belongs to")
    task_id: str = Field(..., description="Task that emitted the event")
    timestamp: datetime = Field(
        default_factory=DateTimeUtils.get_current_utc_datetime,
        description="When the event occurred",
    )
    payload: Dict[str, Any] = Field(
        default_factory=dict, description="Event payload data"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "event_type": "job.chunk.completed",
                "session_key": "abc123_Korean",
                "task_id": "translate-123e4567-e89b-12d3-a456-426614174000",
                "timestamp": "2024-01-01T00:00:00Z",
                "payload": {
                    "chunk_index": 0,
                    "total_chunks": 9,
                    "segments": [{"start": "0:01", "text": "안녕하세요"}],
                },
            }
        }


class ResumeHints(BaseModel):
    """Caller-supplied resume point that overrides snapshot lookup."""

    start_chunk_index: int = Field(0, ge=0, description="Chunk to start from")
    initial_translations: List[Segment] = Field(
        default_factory=list, description="Translations already known"
    )
    initial_previous_context: Optional[str] = Field(
        None, description="Context for the first chunk to translate"
    )


class TranslateJobRequest(BaseModel):
    """Request to translate (or resume translating) a transcript."""

    content_id: str = Field(..., min_length=1, description="Source document id")
    target_lang: str = Field(
        default_factory=lambda: settings.translation_default_target_language
    )
    source_lang: str = Field(
        default_factory=lambda: settings.translation_default_source_language
    )
    title: str = Field("Unknown Video", description="Document title")
    segments: List[Segment] = Field(..., description="Ordered source segments")
    config: TranslationConfig = Field(default_factory=TranslationConfig)
    resume_hints: Optional[ResumeHints] = Field(
        None, description="Explicit resume point"
    )

    @property
    def session_key(self) -> str:
        return StringUtils.generate_session_key(self.content_id, self.target_lang)


class RefineJobRequest(BaseModel):
    """Request to re-segment a draft translation against the original timing."""

    content_id: str = Field(..., min_length=1, description="Source document id")
    target_lang: str = Field(
        default_factory=lambda: settings.translation_default_target_language
    )
    source_lang: str = Field(
        default_factory=lambda: settings.translation_default_source_language
    )
    title: str = Field("Unknown Video", description="Document title")
    original_segments: List[Segment] = Field(
        ..., description="Source segments carrying the timing"
    )
    draft_text: Optional[str] = Field(
        None, description="Draft translation; the cached translation when omitted"
    )
    config: TranslationConfig = Field(default_factory=TranslationConfig)

    @property
    def session_key(self) -> str:
        return StringUtils.generate_session_key(self.content_id, self.target_lang)


class UsageTotals(BaseModel):
    """Aggregated billable token counts."""

    input_tokens: int = Field(0, description="Prompt tokens")
    output_tokens: int = Field(0, description="Output tokens including reasoning")
