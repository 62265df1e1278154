"""Service layer for FrameReader."""

from framereader.services.job_store import JobStore
from framereader.services.orchestrator import PipelineOrchestrator
from framereader.services.scheduler import NOT_QUEUED, QueueScheduler
from framereader.services.script_format import build_scenes, build_timeline, format_basic_script
from framereader.services.stages import StageExecutors
from framereader.services.sweeper import ExpirySweeper

__all__ = [
    "JobStore",
    "PipelineOrchestrator",
    "NOT_QUEUED",
    "QueueScheduler",
    "build_scenes",
    "build_timeline",
    "format_basic_script",
    "StageExecutors",
    "ExpirySweeper",
]
