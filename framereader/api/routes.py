"""FastAPI routes for the FrameReader API."""

import logging
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Literal, Optional
from urllib.parse import urlparse
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from framereader.api.deps import get_scheduler, get_settings_dep, get_store
from framereader.config import Settings
from framereader.models.analysis import Platform
from framereader.models.job import Job, JobError, JobStages, JobStatus
from framereader.services.job_store import JobStore
from framereader.services.scheduler import NOT_QUEUED, QueueScheduler
from framereader.utils.errors import (
    FrameReaderError,
    InvalidRequestError,
    JobConflictError,
    JobNotFoundError,
    QueueFullError,
)

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api")

STARTED_AT = time.monotonic()
VERSION = "1.0.0"
UPLOAD_CHUNK_BYTES = 1024 * 1024

PLATFORM_PATTERNS: Dict[str, List[re.Pattern[str]]] = {
    "youtube": [
        re.compile(r"youtube\.com/watch"),
        re.compile(r"youtu\.be/"),
        re.compile(r"youtube\.com/shorts/"),
    ],
    "tiktok": [re.compile(r"tiktok\.com/")],
    "instagram": [re.compile(r"instagram\.com/reel/"), re.compile(r"instagram\.com/p/")],
    "vimeo": [re.compile(r"vimeo\.com/")],
}

UNSUPPORTED_URL_MESSAGE = (
    "This doesn't look like a supported video URL. "
    "Supported: YouTube, TikTok, Instagram, Vimeo."
)


def detect_platform(url: str) -> Platform:
    """Platform tag for a video URL, ``unknown`` when nothing matches."""
    for platform, patterns in PLATFORM_PATTERNS.items():
        if any(p.search(url) for p in patterns):
            return platform  # type: ignore[return-value]
    return "unknown"


# ==================== Exception Handlers ====================


def _error_body(code: str, message: str, user_message: str) -> Dict[str, Dict[str, str]]:
    return {"error": {"code": code, "message": message, "user_message": user_message}}


async def frame_reader_exception_handler(request: Request, exc: FrameReaderError) -> JSONResponse:
    """Handle application-specific errors."""
    # Determine appropriate status code based on error type
    status_code = 500

    if isinstance(exc, InvalidRequestError):
        status_code = 400
    elif isinstance(exc, JobNotFoundError):
        status_code = 404
    elif isinstance(exc, JobConflictError):
        status_code = 409
    elif isinstance(exc, QueueFullError):
        status_code = 503

    logger.warning(f"{type(exc).__name__}: {exc} (status {status_code})")
    return JSONResponse(
        status_code=status_code,
        content=_error_body(exc.code, str(exc), exc.user_message),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request body validation errors."""
    return JSONResponse(
        status_code=400,
        content=_error_body("VALIDATION_ERROR", str(exc.errors()), UNSUPPORTED_URL_MESSAGE),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content=_error_body(
            "INTERNAL_ERROR",
            "An unexpected error occurred",
            "Something went wrong. Please try again.",
        ),
    )


# ==================== Request/Response Models ====================


class ProcessRequest(BaseModel):
    """Request model for URL submission."""

    video_url: str = Field(min_length=1, max_length=2048)

    @field_validator("video_url")
    @classmethod
    def video_url_is_http(cls, v: str) -> str:
        """Validate that the URL is an absolute http(s) URL."""
        parsed = urlparse(v.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Invalid URL format")
        return v.strip()


class SubmitResponse(BaseModel):
    job_id: str
    status: JobStatus
    queue_position: Optional[int] = None


class StatusMetadata(BaseModel):
    title: Optional[str] = None
    duration: Optional[float] = None
    platform: Platform


class StatusResponse(BaseModel):
    """Response model for the status endpoint."""

    job_id: str
    status: JobStatus
    stages: JobStages
    metadata: Optional[StatusMetadata] = None
    error: Optional[JobError] = None
    stage_errors: Optional[Dict[str, JobError]] = None
    queue_position: Optional[int] = None
    estimated_time_remaining: Optional[int] = None


class ScriptMetadata(BaseModel):
    title: Optional[str] = None
    duration: Optional[float] = None
    platform: Platform
    processed_at: datetime


class ScriptResponse(BaseModel):
    job_id: str
    script: str
    metadata: ScriptMetadata


class CancelResponse(BaseModel):
    job_id: str
    status: Literal["cancelled"] = "cancelled"


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime: int
    active_jobs: int
    queued_jobs: int


# ==================== Helpers ====================


def _load_job(store: JobStore, job_id: str) -> Job:
    try:
        UUID(job_id)
    except ValueError:
        raise JobNotFoundError(f"Malformed job id: {job_id}", "Job not found.")
    job = store.get(job_id)
    if not job:
        raise JobNotFoundError(f"Unknown job id: {job_id}")
    return job


def _admit(
    store: JobStore,
    scheduler: QueueScheduler,
    platform: Platform,
    video_url: Optional[str] = None,
    file_path: Optional[str] = None,
) -> SubmitResponse:
    job = store.create(platform, video_url=video_url, file_path=file_path)
    scheduler.try_start_next()
    position = scheduler.queue_position(job.job_id)
    current = store.get(job.job_id)
    return SubmitResponse(
        job_id=job.job_id,
        status=current.status if current else job.status,
        queue_position=position if position != NOT_QUEUED else None,
    )


# ==================== Endpoints ====================


@router.get("/health", response_model=HealthResponse)
async def health(scheduler: QueueScheduler = Depends(get_scheduler)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=VERSION,
        uptime=int(time.monotonic() - STARTED_AT),
        active_jobs=scheduler.active_count,
        queued_jobs=scheduler.queued_count,
    )


@router.post("/process", response_model=SubmitResponse)
async def process_url(
    request: ProcessRequest,
    store: JobStore = Depends(get_store),
    scheduler: QueueScheduler = Depends(get_scheduler),
) -> SubmitResponse:
    """
    Submit a video URL for processing.

    Rejects with 503 when the queue is full; otherwise the job is queued and
    started immediately if a processing slot is free.
    """
    if not scheduler.can_enqueue():
        raise QueueFullError(scheduler.max_queue_size)

    platform = detect_platform(request.video_url)
    logger.info(f"Processing request for {platform} URL: {request.video_url}")
    return _admit(store, scheduler, platform, video_url=request.video_url)


@router.post("/upload", response_model=SubmitResponse)
async def upload_video(
    video: UploadFile = File(...),
    store: JobStore = Depends(get_store),
    scheduler: QueueScheduler = Depends(get_scheduler),
    settings: Settings = Depends(get_settings_dep),
) -> SubmitResponse:
    """Accept a video file upload and queue it for processing."""
    if not (video.content_type or "").startswith("video/"):
        raise InvalidRequestError(
            f"Unsupported content type: {video.content_type}",
            "This file type is not supported. Try MP4, MOV, or WebM.",
        )

    if not scheduler.can_enqueue():
        raise QueueFullError(scheduler.max_queue_size)

    temp_dir = Path(settings.temp_dir)
    temp_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(video.filename or "").suffix
    dest = temp_dir / f"{int(time.time() * 1000)}-{uuid4().hex[:8]}{suffix}"

    size = 0
    try:
        with open(dest, "wb") as out:
            while True:
                chunk = await video.read(UPLOAD_CHUNK_BYTES)
                if not chunk:
                    break
                size += len(chunk)
                if size > settings.max_upload_bytes:
                    raise InvalidRequestError(
                        f"Upload exceeds {settings.max_upload_bytes} bytes",
                        "This file is too large. The maximum size is 2GB.",
                    )
                out.write(chunk)
    except Exception:
        dest.unlink(missing_ok=True)
        raise

    logger.info(f"Upload received: {video.filename} ({size} bytes)")
    return _admit(store, scheduler, "upload", file_path=str(dest))


@router.get("/status/{job_id}", response_model=StatusResponse)
async def get_status(
    job_id: str,
    store: JobStore = Depends(get_store),
    scheduler: QueueScheduler = Depends(get_scheduler),
) -> StatusResponse:
    """Current status, stage map and errors for a job."""
    job = _load_job(store, job_id)

    estimated = None
    if job.status == "processing" and job.metadata and job.metadata.duration:
        estimated = max(0, round(job.metadata.duration * 0.75))

    position = scheduler.queue_position(job_id)
    return StatusResponse(
        job_id=job.job_id,
        status=job.status,
        stages=job.stages,
        metadata=(
            StatusMetadata(
                title=job.metadata.title,
                duration=job.metadata.duration,
                platform=job.platform,
            )
            if job.metadata
            else None
        ),
        error=job.error,
        stage_errors=job.stage_errors or None,
        queue_position=position if position != NOT_QUEUED else None,
        estimated_time_remaining=estimated,
    )


@router.get("/script/{job_id}", response_model=ScriptResponse)
async def get_script(job_id: str, store: JobStore = Depends(get_store)) -> ScriptResponse:
    """The finished screenplay for a completed job."""
    job = _load_job(store, job_id)
    if job.status != "complete" or not job.script:
        raise JobNotFoundError(
            f"Script for job {job_id} not available (status {job.status})",
            "Script not yet available. Job is still processing.",
        )

    return ScriptResponse(
        job_id=job.job_id,
        script=job.script,
        metadata=ScriptMetadata(
            title=job.metadata.title if job.metadata else None,
            duration=job.metadata.duration if job.metadata else None,
            platform=job.platform,
            processed_at=job.completed_at or datetime.now(job.created_at.tzinfo),
        ),
    )


@router.delete("/job/{job_id}", response_model=CancelResponse)
async def cancel_job(
    job_id: str,
    store: JobStore = Depends(get_store),
    scheduler: QueueScheduler = Depends(get_scheduler),
) -> CancelResponse:
    """Cancel a queued job. Processing and finished jobs cannot be cancelled."""
    job = _load_job(store, job_id)

    if not scheduler.cancel(job_id):
        current = store.get(job_id) or job
        if current.status == "processing":
            raise JobConflictError(
                f"Job {job_id} is processing",
                "Job is already processing and cannot be cancelled.",
            )
        raise JobConflictError(
            f"Job {job_id} is {current.status}", "Only queued jobs can be cancelled."
        )

    return CancelResponse(job_id=job_id)
