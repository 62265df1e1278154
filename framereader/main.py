"""FastAPI application: wires the job store, scheduler, orchestrator and sweeper."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from framereader.api.routes import (
    frame_reader_exception_handler,
    generic_exception_handler,
    router,
    validation_exception_handler,
)
from framereader.config import Settings, get_settings
from framereader.services.assembler import create_script_assembler
from framereader.services.downloader import YtDlpDownloader
from framereader.services.job_store import JobStore
from framereader.services.media import (
    FFmpegAudioExtractor,
    FFmpegFrameSampler,
    FFprobe,
    TempFileCleanup,
)
from framereader.services.orchestrator import PipelineOrchestrator
from framereader.services.scheduler import QueueScheduler
from framereader.services.stages import StageExecutors
from framereader.services.sweeper import ExpirySweeper
from framereader.services.transcription import TranscriptionService
from framereader.services.vision import create_vision_analyzer
from framereader.utils.errors import FrameReaderError

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_stage_executors(settings: Settings) -> StageExecutors:
    """Build the production stage collaborators from settings."""
    prober = FFprobe()
    return StageExecutors(
        downloader=YtDlpDownloader(
            temp_dir=settings.temp_dir,
            timeout_seconds=settings.download_timeout_seconds,
            cookies_path=settings.youtube_cookies_path,
        ),
        audio_extractor=FFmpegAudioExtractor(settings.temp_dir, prober),
        frame_sampler=FFmpegFrameSampler(
            settings.temp_dir,
            prober,
            max_frames=settings.max_frames,
            scene_threshold=settings.scene_detection_threshold,
            resolution=settings.frame_resolution,
            quality=settings.frame_quality,
        ),
        transcriber=TranscriptionService(
            settings.assemblyai_api_key,
            timeout_seconds=settings.transcription_timeout_seconds,
            poll_seconds=settings.transcription_poll_seconds,
        ),
        visual_analyzer=create_vision_analyzer(),
        assembler=create_script_assembler(),
        cleanup=TempFileCleanup(settings.temp_dir),
        prober=prober,
    )


def create_app(
    settings: Optional[Settings] = None,
    stages: Optional[StageExecutors] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings to use (defaults to environment settings)
        stages: Stage collaborators (defaults to the ffmpeg/yt-dlp/API stack)

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        store = JobStore()
        orchestrator = PipelineOrchestrator(store, stages or create_stage_executors(settings))
        scheduler = QueueScheduler(
            store,
            max_concurrent_jobs=settings.max_concurrent_jobs,
            max_queue_size=settings.max_queue_size,
        )
        scheduler.register_runner(orchestrator.process_job)
        sweeper = ExpirySweeper(
            store,
            settings.temp_dir,
            expiry_seconds=settings.job_expiry_seconds,
            interval_seconds=settings.cleanup_interval_seconds,
        )

        app.state.settings = settings
        app.state.store = store
        app.state.scheduler = scheduler
        app.state.sweeper = sweeper

        sweeper.start()
        logger.info(
            f"FrameReader ready ({settings.max_concurrent_jobs} slots, "
            f"queue limit {settings.max_queue_size})"
        )
        try:
            yield
        finally:
            logger.info("Shutting down gracefully")
            await sweeper.stop()
            await scheduler.shutdown()

    app = FastAPI(title="FrameReader API", lifespan=lifespan)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type"],
    )

    app.add_exception_handler(FrameReaderError, frame_reader_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
    app.include_router(router)
    return app


configure_logging(get_settings().log_level)
app = create_app()

if __name__ == "__main__":
    uvicorn.run("framereader.main:app", host="0.0.0.0", port=3001, reload=True)
