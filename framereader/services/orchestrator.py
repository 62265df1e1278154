"""Pipeline orchestrator: drives one job from download to script."""

import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from framereader.models.analysis import (
    AssemblyInput,
    AudioResult,
    FrameInfo,
    TranscriptionResult,
    VideoMetadata,
    VisualAnalysis,
)
from framereader.models.job import Job, JobError
from framereader.services.job_store import JobStore
from framereader.services.script_format import format_basic_script
from framereader.services.stages import StageExecutors
from framereader.utils.errors import (
    GENERIC_USER_MESSAGE,
    FrameReaderError,
    PipelineAbortedError,
    StageError,
)

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Runs a single job through every stage to a terminal status.

    The orchestrator is the only writer of derived content (metadata,
    transcription, visual analysis, script) into the job store.
    """

    def __init__(self, store: JobStore, stages: StageExecutors) -> None:
        """
        Initialize the PipelineOrchestrator.

        Args:
            store: Job store shared with the scheduler
            stages: Stage collaborators
        """
        self.store = store
        self.stages = stages

    async def process_job(self, job_id: str) -> None:
        """
        Run the pipeline for ``job_id``.

        Never raises for pipeline failures: every error ends as a top-level
        error on the job. A failing stage reports its own stage tag and
        user-facing message, so a refused download tells the user why.
        Errors from outside the stage error hierarchy are tagged
        ``pipeline`` and get the generic user message.
        """
        job = self.store.get(job_id)
        if not job:
            logger.error(f"process_job: job {job_id} not found")
            return

        logger.info(f"Starting pipeline for job {job_id}")

        try:
            await self._run(job)
            logger.info(f"Pipeline complete for job {job_id}")
        except Exception as e:
            logger.exception(f"Pipeline failed for job {job_id}: {e}")
            self.store.set_error(job_id, self._to_job_error(e))
            self._cleanup(job_id)

    async def _run(self, job: Job) -> None:
        job_id = job.job_id

        # ========== Download ==========
        video_path, title, duration = await self._acquire(job)
        self.store.set_metadata(
            job_id,
            VideoMetadata(title=title, duration=duration, source_url=job.video_url),
        )

        # ========== Extract audio + sample frames ==========
        self.store.set_stage(job_id, "transcription", "in_progress")
        self.store.set_stage(job_id, "visual", "in_progress")
        audio, frames = await self._extract(job_id, video_path, duration)

        # ========== Transcribe + analyze visuals ==========
        (transcription, transcription_failed), (visual, visual_failed) = await asyncio.gather(
            self._transcribe(job_id, audio),
            self._analyze(job_id, frames, title, duration),
        )

        if transcription_failed and visual_failed:
            raise PipelineAbortedError("Both transcription and visual analysis failed")

        # ========== Assemble ==========
        self.store.set_stage(job_id, "assembly", "in_progress")
        data = AssemblyInput(
            title=title,
            duration=duration,
            source_url=job.video_url or "File upload",
            platform=job.platform,
            dialogue_entries=transcription.dialogue_entries if transcription else [],
            speakers=transcription.speakers if transcription else [],
            action_entries=visual.action_entries if visual else [],
            characters=visual.characters if visual else [],
            scenes=visual.scenes if visual else [],
            transcription_failed=transcription_failed,
            visual_failed=visual_failed,
        )
        script = await self._assemble(job_id, data)

        self.store.set_script(job_id, script)
        self.store.set_stage(job_id, "assembly", "complete")
        self.store.set_status(job_id, "complete")

    async def _acquire(self, job: Job) -> Tuple[str, str, float]:
        """Return (video path, title, duration), downloading if needed."""
        job_id = job.job_id

        if job.file_path:
            self.store.set_stage(job_id, "download", "skipped")
            duration = 0.0
            if self.stages.prober is not None:
                try:
                    duration = await self.stages.prober.probe_duration(job.file_path)
                except Exception as e:
                    logger.warning(f"Could not probe duration for job {job_id}: {e}")
            return job.file_path, "Untitled", duration

        self.store.set_stage(job_id, "download", "in_progress")
        try:
            result = await self.stages.downloader.fetch(job_id, job.video_url or "")
        except Exception:
            self.store.set_stage(job_id, "download", "error")
            raise
        self.store.set_stage(job_id, "download", "complete")
        return result.file_path, result.title, result.duration

    async def _extract(
        self, job_id: str, video_path: str, duration: float
    ) -> Tuple[AudioResult, List[FrameInfo]]:
        audio_result, frames_result = await asyncio.gather(
            self.stages.audio_extractor.extract(job_id, video_path),
            self.stages.frame_sampler.sample(job_id, video_path, duration),
            return_exceptions=True,
        )

        # The source video is never needed again, whatever happened above.
        self._delete_video(job_id, video_path)

        if isinstance(frames_result, BaseException):
            raise frames_result
        if isinstance(audio_result, BaseException):
            # Contract says extract never raises; degrade to "no audio" if it does.
            logger.warning(f"Audio extraction raised for job {job_id}: {audio_result}")
            audio_result = AudioResult(has_audio=False, extraction_error=str(audio_result))

        if audio_result.extraction_error:
            logger.info(f"Audio extraction for job {job_id}: {audio_result.extraction_error}")
        return audio_result, frames_result

    def _delete_video(self, job_id: str, video_path: str) -> None:
        try:
            Path(video_path).unlink(missing_ok=True)
            logger.debug(f"Deleted video file for job {job_id}: {video_path}")
        except OSError as e:
            logger.debug(f"Could not delete video file {video_path}: {e}")

    async def _transcribe(
        self, job_id: str, audio: AudioResult
    ) -> Tuple[Optional[TranscriptionResult], bool]:
        """Transcription branch. Writes only transcription fields."""
        if not audio.has_audio:
            self.store.set_stage(job_id, "transcription", "skipped")
            return None, False

        try:
            result = await self.stages.transcriber.transcribe(job_id, audio.audio_path)
        except Exception as e:
            logger.error(f"Transcription failed for job {job_id}: {e}")
            self.store.set_stage(job_id, "transcription", "error")
            self.store.set_stage_error(job_id, "transcription", self._to_job_error(e, "transcription"))
            return None, True
        finally:
            self._safe_remove(self.stages.cleanup.remove_audio, job_id)

        self.store.set_transcription(job_id, result)
        self.store.set_stage(job_id, "transcription", "complete")
        return result, False

    async def _analyze(
        self, job_id: str, frames: List[FrameInfo], title: str, duration: float
    ) -> Tuple[Optional[VisualAnalysis], bool]:
        """Visual branch. Writes only visual fields."""
        if not frames:
            self.store.set_stage(job_id, "visual", "skipped")
            return None, False

        try:
            result = await self.stages.visual_analyzer.analyze(job_id, frames, title, duration)
        except Exception as e:
            logger.error(f"Visual analysis failed for job {job_id}: {e}")
            self.store.set_stage(job_id, "visual", "error")
            self.store.set_stage_error(job_id, "visual", self._to_job_error(e, "visual"))
            return None, True
        finally:
            self._safe_remove(self.stages.cleanup.remove_frames, job_id)

        self.store.set_visual_analysis(job_id, result)
        self.store.set_stage(job_id, "visual", "complete")
        return result, False

    async def _assemble(self, job_id: str, data: AssemblyInput) -> str:
        try:
            script = await self.stages.assembler.assemble(job_id, data)
            if script and script.strip():
                return script
            logger.warning(f"Assembler returned an empty script for job {job_id}")
        except Exception as e:
            logger.warning(f"Script assembly failed for job {job_id}, using basic formatter: {e}")
        return format_basic_script(data)

    def _cleanup(self, job_id: str) -> None:
        self._safe_remove(self.stages.cleanup.remove_audio, job_id)
        self._safe_remove(self.stages.cleanup.remove_frames, job_id)

    @staticmethod
    def _safe_remove(remove: Callable[[str], None], job_id: str) -> None:
        try:
            remove(job_id)
        except Exception as e:
            logger.debug(f"Cleanup failed for job {job_id}: {e}")

    @staticmethod
    def _to_job_error(exc: Exception, default_stage: str = "pipeline") -> JobError:
        stage = exc.stage if isinstance(exc, StageError) else default_stage
        user_message = (
            exc.user_message if isinstance(exc, FrameReaderError) else GENERIC_USER_MESSAGE
        )
        return JobError(stage=stage, message=str(exc) or type(exc).__name__, user_message=user_message)
