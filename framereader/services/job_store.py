"""In-memory job registry.

The store owns every ``Job`` and is the only place job state is mutated.
It holds no scheduling policy. All operations take one re-entrant lock, so
they are atomic with respect to each other whether callers run on the event
loop or in worker threads. Mutators on an unknown id are no-ops.
"""

import itertools
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from framereader.models.analysis import (
    Platform,
    TranscriptionResult,
    VideoMetadata,
    VisualAnalysis,
)
from framereader.models.job import (
    Job,
    JobError,
    JobStages,
    JobStatus,
    StageName,
    StageStatus,
    utc_now,
)

logger = logging.getLogger(__name__)


class JobStore:
    """Authoritative, lock-guarded mapping of job id to ``Job``."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        """
        Initialize the JobStore.

        Args:
            clock: Source of the current time, used for created_at,
                completed_at and expiry checks
        """
        self._jobs: Dict[str, Job] = {}
        self._order: Dict[str, int] = {}
        self._seq = itertools.count()
        self._lock = threading.RLock()
        self._clock = clock

    # ==================== CREATE / READ ====================

    def create(
        self,
        platform: Platform,
        video_url: Optional[str] = None,
        file_path: Optional[str] = None,
    ) -> Job:
        """
        Create and register a queued job.

        Args:
            platform: Platform tag for the source
            video_url: Source URL, for jobs that need a download
            file_path: Local path, for uploaded files

        Returns:
            A snapshot of the created job

        Raises:
            pydantic.ValidationError: If not exactly one source is given
        """
        job = Job(
            video_url=video_url,
            file_path=file_path,
            platform=platform,
            stages=JobStages(download="skipped" if file_path else "pending"),
            created_at=self._clock(),
        )
        with self._lock:
            self._jobs[job.job_id] = job
            self._order[job.job_id] = next(self._seq)
        logger.info(
            f"Job created: {job.job_id} (platform={platform}, "
            f"url={video_url}, upload={file_path is not None})"
        )
        return job.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[Job]:
        """Return a read-only snapshot of a job, or None."""
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def list_jobs(self, status: Optional[JobStatus] = None) -> List[Job]:
        """Snapshots of all jobs (optionally filtered), oldest first.

        Order is creation order as seen by the store, so a wall clock
        stepping backwards cannot move a later job ahead of earlier ones.
        """
        with self._lock:
            ordered = sorted(self._jobs, key=self._order.__getitem__)
            return [
                self._jobs[job_id].model_copy(deep=True)
                for job_id in ordered
                if status is None or self._jobs[job_id].status == status
            ]

    def count(self, status: Optional[JobStatus] = None) -> int:
        with self._lock:
            if status is None:
                return len(self._jobs)
            return sum(1 for j in self._jobs.values() if j.status == status)

    # ==================== STATUS ====================

    def set_status(self, job_id: str, status: JobStatus) -> None:
        """
        Move a job to ``status``.

        Status only moves forward: a finished job keeps its status and a job
        never goes back to ``queued``. Such moves are ignored. Use
        ``set_error`` to force a failure.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return
            previous = job.status
            applied = self._apply_status(job, status)
        if applied:
            logger.debug(f"Job {job_id} status -> {status}")
        else:
            logger.debug(f"Job {job_id} ignored status {previous} -> {status}")

    def compare_and_set_status(
        self, job_id: str, expected: JobStatus, status: JobStatus
    ) -> bool:
        """
        Atomically move a job from ``expected`` to ``status``.

        Returns:
            True if the job existed with status ``expected`` and the move
            was allowed
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if not job or job.status != expected:
                return False
            if not self._apply_status(job, status):
                return False
        logger.debug(f"Job {job_id} status {expected} -> {status}")
        return True

    def _apply_status(self, job: Job, status: JobStatus) -> bool:
        if job.status == status:
            return True
        if job.is_terminal or status == "queued":
            return False
        job.status = status
        if job.is_terminal and job.completed_at is None:
            job.completed_at = self._clock()
        return True

    # ==================== STAGES / ARTIFACTS ====================

    def set_stage(self, job_id: str, stage: StageName, stage_status: StageStatus) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return
            setattr(job.stages, stage, stage_status)
        logger.debug(f"Job {job_id} stage {stage} -> {stage_status}")

    def set_metadata(self, job_id: str, metadata: VideoMetadata) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job:
                job.metadata = metadata.model_copy(deep=True)

    def set_transcription(self, job_id: str, transcription: TranscriptionResult) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job:
                job.transcription = transcription.model_copy(deep=True)

    def set_visual_analysis(self, job_id: str, visual_analysis: VisualAnalysis) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job:
                job.visual_analysis = visual_analysis.model_copy(deep=True)

    def set_script(self, job_id: str, script: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job:
                job.script = script

    # ==================== ERRORS ====================

    def set_error(self, job_id: str, error: JobError) -> None:
        """Record the top-level error. Always forces status to ``error``.

        An earlier ``completed_at`` is kept.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return
            job.error = error.model_copy()
            job.status = "error"
            if job.completed_at is None:
                job.completed_at = self._clock()
        logger.debug(f"Job {job_id} status -> error ({error.stage})")

    def set_stage_error(self, job_id: str, stage: StageName, error: JobError) -> None:
        """Record a partial failure without touching the job status."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job:
                job.stage_errors[stage] = error.model_copy()

    # ==================== DELETE / EXPIRY ====================

    def delete(self, job_id: str) -> bool:
        with self._lock:
            self._order.pop(job_id, None)
            return self._jobs.pop(job_id, None) is not None

    def sweep_expired(self, expiry: timedelta, now: Optional[datetime] = None) -> int:
        """
        Delete terminal jobs older than ``expiry``.

        A job whose age equals ``expiry`` exactly is kept; it is removed once
        its age is strictly greater.

        Args:
            expiry: Maximum age since creation for finished jobs
            now: Reference time (defaults to the store clock)

        Returns:
            Number of jobs removed
        """
        now = now or self._clock()
        with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if job.is_terminal and now - job.created_at > expiry
            ]
            for job_id in expired:
                del self._jobs[job_id]
                del self._order[job_id]

        if expired:
            logger.info(f"Cleaned {len(expired)} expired jobs")
        return len(expired)
