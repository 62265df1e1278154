"""Contracts for the pipeline stage executors.

The orchestrator only depends on these protocols; the concrete adapters in
this package (yt-dlp, ffmpeg, AssemblyAI, vision and assembly agents) are
one implementation of them.
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol

from framereader.models.analysis import (
    AssemblyInput,
    AudioResult,
    DownloadResult,
    FrameInfo,
    TranscriptionResult,
    VisualAnalysis,
)


class Downloader(Protocol):
    async def fetch(self, job_id: str, url: str) -> DownloadResult:
        """Download the video. Raises DownloadError."""
        ...


class AudioExtractor(Protocol):
    async def extract(self, job_id: str, file_path: str) -> AudioResult:
        """Extract the audio track. Never raises; no audio is reported as data."""
        ...


class FrameSampler(Protocol):
    async def sample(
        self, job_id: str, file_path: str, duration: float
    ) -> List[FrameInfo]:
        """Sample frames. May return []; raises only on hard I/O failure."""
        ...


class Transcriber(Protocol):
    async def transcribe(self, job_id: str, audio_path: str) -> TranscriptionResult:
        """Raises TranscriptionError."""
        ...


class VisualAnalyzer(Protocol):
    async def analyze(
        self, job_id: str, frames: List[FrameInfo], title: str, duration: float
    ) -> VisualAnalysis:
        """Raises VisualAnalysisError."""
        ...


class Assembler(Protocol):
    async def assemble(self, job_id: str, data: AssemblyInput) -> str:
        """Raises AssemblyError."""
        ...


class Cleanup(Protocol):
    def remove_audio(self, job_id: str) -> None:
        """Idempotent, never raises."""
        ...

    def remove_frames(self, job_id: str) -> None:
        """Idempotent, never raises."""
        ...


class DurationProber(Protocol):
    async def probe_duration(self, file_path: str) -> float:
        """Duration in seconds, 0.0 when unknown."""
        ...


@dataclass
class StageExecutors:
    """The set of collaborators one orchestrator runs jobs with."""

    downloader: Downloader
    audio_extractor: AudioExtractor
    frame_sampler: FrameSampler
    transcriber: Transcriber
    visual_analyzer: VisualAnalyzer
    assembler: Assembler
    cleanup: Cleanup
    prober: Optional[DurationProber] = None
