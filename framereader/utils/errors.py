"""Custom exception classes for FrameReader.

Every error carries an internal ``message`` (``str(exc)``) and a separate
``user_message`` safe to show to end users.
"""

from typing import Optional

GENERIC_USER_MESSAGE = "Something went wrong while analyzing this video."


class FrameReaderError(Exception):
    """Base exception for all application errors."""

    code = "INTERNAL_ERROR"
    default_user_message = GENERIC_USER_MESSAGE

    def __init__(self, message: str, user_message: Optional[str] = None) -> None:
        self.user_message = user_message or self.default_user_message
        super().__init__(message)


class InvalidRequestError(FrameReaderError):
    """Request rejected before a job was created."""

    code = "VALIDATION_ERROR"
    default_user_message = "This request could not be processed."


class QueueFullError(FrameReaderError):
    """Admission ceiling reached."""

    code = "QUEUE_FULL"

    def __init__(self, max_queue_size: int) -> None:
        self.max_queue_size = max_queue_size
        super().__init__(
            f"Queue is full ({max_queue_size} jobs)",
            f"Queue is full ({max_queue_size} videos max). "
            "Wait for some to finish before adding more.",
        )


class JobNotFoundError(FrameReaderError):
    code = "NOT_FOUND"
    default_user_message = "Job not found. It may have expired."


class JobConflictError(FrameReaderError):
    code = "CONFLICT"
    default_user_message = "This job cannot be changed in its current state."


class StageError(FrameReaderError):
    """A pipeline stage failed."""

    stage = "pipeline"

    @property
    def code(self) -> str:  # type: ignore[override]
        return f"PROCESSING_ERROR_{self.stage.upper()}"


class DownloadError(StageError):
    """Fetching the source video failed. Fatal for the job."""

    stage = "download"
    default_user_message = (
        "We couldn't access this video. This sometimes happens. "
        "Try uploading the file instead."
    )


class MediaExtractionError(StageError):
    """Hard I/O failure while extracting audio or frames."""

    stage = "extraction"


class TranscriptionError(StageError):
    stage = "transcription"
    default_user_message = "Audio transcription was unavailable for this video."


class VisualAnalysisError(StageError):
    stage = "visual"
    default_user_message = "Visual analysis was unavailable for this video."


class AssemblyError(StageError):
    """Narrative assembly failed; always recovered by the basic formatter."""

    stage = "assembly"


class PipelineAbortedError(StageError):
    """Neither transcription nor visual analysis produced anything usable."""

    stage = "pipeline"
