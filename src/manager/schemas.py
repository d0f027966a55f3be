"""Request and response schemas of the translation API."""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from common.config import settings
from common.schemas import (
    JobEvent,
    JobSnapshot,
    RefineJobRequest,
    Segment,
    SnapshotMetadata,
    UsageTotals,
)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy", description="Service status")
    version: str = Field(default="1.0.0", description="API version")
    store_backend: str = Field(
        default_factory=lambda: settings.job_store_backend,
        description="Configured job store backend",
    )
    active_sessions: int = Field(default=0, description="Number of running jobs")
    mock_translator: bool = Field(
        default=False, description="Whether the translator runs without an API key"
    )


class RefineRequestBody(RefineJobRequest):
    """Refine request accepting the draft either as text or as segments."""

    draft_segments: Optional[List[Segment]] = Field(
        None, description="Draft translation segments, joined into the draft text"
    )

    @model_validator(mode="after")
    def join_draft_segments(self) -> "RefineRequestBody":
        if not self.draft_text and self.draft_segments:
            self.draft_text = " ".join(segment.text for segment in self.draft_segments)
        return self

    def to_job_request(self) -> RefineJobRequest:
        return RefineJobRequest.model_validate(
            self.model_dump(exclude={"draft_segments"})
        )


class JobAcceptedResponse(BaseModel):
    """Returned when a job has been started."""

    task_id: str = Field(..., description="Identifier of the started task")
    session_key: str = Field(..., description="Session the job runs for")
    status: str = Field(default="accepted", description="Request status")
    message: str = Field(default="", description="Status message")


class SessionStatusResponse(BaseModel):
    """Current state of a session."""

    session_key: str = Field(..., description="Session key")
    is_running: bool = Field(..., description="Whether a job is active")
    snapshot: Optional[JobSnapshot] = Field(None, description="Persisted snapshot")
    last_event: Optional[JobEvent] = Field(
        None, description="Most recent event emitted for the session"
    )


class SessionListResponse(BaseModel):
    """Known sessions, newest first."""

    sessions: List[SnapshotMetadata] = Field(default_factory=list)
    total: int = Field(0, description="Number of sessions")


class AbortResponse(BaseModel):
    """Result of an abort request."""

    session_key: str = Field(..., description="Session key")
    aborted: bool = Field(..., description="Whether a running job was aborted")


class UsageResponse(BaseModel):
    """Token usage totals and cost estimates."""

    today: UsageTotals = Field(default_factory=UsageTotals)
    monthly: UsageTotals = Field(default_factory=UsageTotals)
    today_cost_usd: float = Field(0.0, description="Estimated cost today")
    monthly_cost_usd: float = Field(0.0, description="Estimated cost this month")
    today_display: str = Field("0", description="Formatted total tokens today")
    monthly_display: str = Field("0", description="Formatted total tokens this month")
