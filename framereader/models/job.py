"""Job lifecycle Pydantic models."""

from datetime import datetime, timezone
from typing import Dict, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from framereader.models.analysis import (
    Platform,
    TranscriptionResult,
    VideoMetadata,
    VisualAnalysis,
)

JobStatus = Literal["queued", "processing", "complete", "error", "cancelled"]

StageStatus = Literal["pending", "in_progress", "complete", "skipped", "error"]

StageName = Literal["download", "transcription", "visual", "assembly"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"complete", "error", "cancelled"})


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class JobStages(BaseModel):
    """Independent status per pipeline stage."""

    download: StageStatus = "pending"
    transcription: StageStatus = "pending"
    visual: StageStatus = "pending"
    assembly: StageStatus = "pending"


class JobError(BaseModel):
    """An error recorded on a job.

    ``message`` is the internal diagnostic; ``user_message`` is what callers
    may show to end users. The two are never merged.
    """

    stage: str = Field(min_length=1)
    message: str
    user_message: str


class Job(BaseModel):
    """One submitted video and everything derived from it."""

    job_id: str = Field(default_factory=lambda: str(uuid4()), min_length=1)
    video_url: Optional[str] = None
    file_path: Optional[str] = None
    platform: Platform = "unknown"
    status: JobStatus = "queued"
    stages: JobStages = Field(default_factory=JobStages)
    metadata: Optional[VideoMetadata] = None
    transcription: Optional[TranscriptionResult] = None
    visual_analysis: Optional[VisualAnalysis] = None
    script: Optional[str] = None
    error: Optional[JobError] = None
    stage_errors: Dict[str, JobError] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def exactly_one_source(self) -> "Job":
        """Validate that exactly one of video_url and file_path is set."""
        if (self.video_url is None) == (self.file_path is None):
            raise ValueError("exactly one of video_url and file_path must be set")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
