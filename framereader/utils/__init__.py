"""Utility modules for FrameReader."""

from framereader.utils.errors import (
    AssemblyError,
    DownloadError,
    FrameReaderError,
    InvalidRequestError,
    JobConflictError,
    JobNotFoundError,
    MediaExtractionError,
    PipelineAbortedError,
    QueueFullError,
    StageError,
    TranscriptionError,
    VisualAnalysisError,
)
from framereader.utils.retry import with_retry

__all__ = [
    "FrameReaderError",
    "InvalidRequestError",
    "QueueFullError",
    "JobNotFoundError",
    "JobConflictError",
    "StageError",
    "DownloadError",
    "MediaExtractionError",
    "TranscriptionError",
    "VisualAnalysisError",
    "AssemblyError",
    "PipelineAbortedError",
    "with_retry",
]
