"""Pydantic data models for FrameReader."""

from framereader.models.analysis import (
    ActionEntry,
    AssemblyInput,
    AudioResult,
    DialogueEntry,
    DownloadResult,
    FrameInfo,
    Platform,
    Scene,
    TranscriptionResult,
    VideoMetadata,
    VisualAnalysis,
)
from framereader.models.job import (
    TERMINAL_STATUSES,
    Job,
    JobError,
    JobStages,
    JobStatus,
    StageName,
    StageStatus,
)

__all__ = [
    "ActionEntry",
    "AssemblyInput",
    "AudioResult",
    "DialogueEntry",
    "DownloadResult",
    "FrameInfo",
    "Platform",
    "Scene",
    "TranscriptionResult",
    "VideoMetadata",
    "VisualAnalysis",
    "TERMINAL_STATUSES",
    "Job",
    "JobError",
    "JobStages",
    "JobStatus",
    "StageName",
    "StageStatus",
]
