"""Queue and admission scheduler.

Bounds how many jobs are ``processing`` at once and starts queued jobs in
FIFO order as slots free. Capacity counts are always read live from the
job store. Each started job runs as an ``asyncio.Task``; the task's
done-callback is what frees the slot and pulls the next job.
"""

import asyncio
import logging
import threading
from typing import Awaitable, Callable, Optional, Set

from framereader.models.job import JobError
from framereader.services.job_store import JobStore

logger = logging.getLogger(__name__)

JobRunner = Callable[[str], Awaitable[None]]

NOT_QUEUED = -1

ABANDONED_USER_MESSAGE = "Processing was interrupted. Please submit this video again."


class QueueScheduler:
    """Bounded-concurrency FIFO scheduler over a ``JobStore``."""

    def __init__(
        self,
        store: JobStore,
        max_concurrent_jobs: int = 2,
        max_queue_size: int = 20,
        runner: Optional[JobRunner] = None,
    ) -> None:
        """
        Initialize the QueueScheduler.

        Args:
            store: Job store shared with the orchestrator
            max_concurrent_jobs: Processing slots (C)
            max_queue_size: Admission ceiling for queued + processing (Q)
            runner: Coroutine function that runs one job's pipeline
        """
        if max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        self.store = store
        self.max_concurrent_jobs = max_concurrent_jobs
        self.max_queue_size = max_queue_size
        self._runner = runner
        self._lock = threading.RLock()
        self._tasks: Set["asyncio.Task[None]"] = set()
        self._closing = False

    def register_runner(self, runner: JobRunner) -> None:
        """Set the coroutine function that runs a job's pipeline."""
        self._runner = runner

    @property
    def active_count(self) -> int:
        return self.store.count("processing")

    @property
    def queued_count(self) -> int:
        return self.store.count("queued")

    def can_enqueue(self) -> bool:
        """Advise whether a new job fits under the admission ceiling."""
        return self.queued_count + self.active_count < self.max_queue_size

    def try_start_next(self) -> Optional[str]:
        """
        Start the oldest queued job if a processing slot is free.

        Must be called from within a running event loop.

        Returns:
            The id of the started job, or None if nothing was started
        """
        if self._runner is None:
            raise RuntimeError("No job runner registered")

        if self._closing:
            return None

        with self._lock:
            active = self.active_count
            if active >= self.max_concurrent_jobs:
                logger.debug(
                    f"Cannot start next job: {active}/{self.max_concurrent_jobs} active"
                )
                return None

            job_id = None
            for job in self.store.list_jobs("queued"):
                # A concurrent cancel may win the race; move on to the next job.
                if self.store.compare_and_set_status(job.job_id, "queued", "processing"):
                    job_id = job.job_id
                    break

            if job_id is None:
                logger.debug("No queued jobs to start")
                return None

            self._submit(job_id)

        logger.info(f"Starting job {job_id} from queue")
        return job_id

    def _submit(self, job_id: str) -> None:
        task = asyncio.get_running_loop().create_task(
            self._runner(job_id), name=f"job-{job_id}"  # type: ignore[misc]
        )
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_task_done(job_id, t))

    def _on_task_done(self, job_id: str, task: "asyncio.Task[None]") -> None:
        self._tasks.discard(task)

        if task.cancelled():
            reason = "Job task was cancelled"
        elif task.exception() is not None:
            reason = f"Unhandled pipeline error: {task.exception()!r}"
            logger.error(f"Unhandled pipeline error for job {job_id}", exc_info=task.exception())
        else:
            reason = "Pipeline returned without reaching a terminal state"

        job = self.store.get(job_id)
        if job and job.status == "processing":
            # Slots are derived from status, so a job left processing would hold one forever.
            self.store.set_error(
                job_id,
                JobError(stage="pipeline", message=reason, user_message=ABANDONED_USER_MESSAGE),
            )

        self.on_job_complete(job_id)

    def on_job_complete(self, job_id: str) -> Optional[str]:
        """Reuse the slot freed by ``job_id``. Starts at most one job."""
        logger.info(f"Job {job_id} completed, checking queue for next")
        return self.try_start_next()

    def cancel(self, job_id: str) -> bool:
        """Cancel a queued job. Any other status is left untouched."""
        with self._lock:
            cancelled = self.store.compare_and_set_status(job_id, "queued", "cancelled")
        if cancelled:
            logger.info(f"Job {job_id} cancelled")
        return cancelled

    def queue_position(self, job_id: str) -> int:
        """1-based FIFO position among queued jobs, or ``NOT_QUEUED`` (-1)."""
        for index, job in enumerate(self.store.list_jobs("queued")):
            if job.job_id == job_id:
                return index + 1
        return NOT_QUEUED

    async def drain(self) -> None:
        """Wait until no job runs are in flight, including ones started meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight runs and wait for their callbacks to settle."""
        self._closing = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Scheduler shut down ({len(tasks)} in-flight jobs cancelled)")
