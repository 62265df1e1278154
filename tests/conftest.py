"""Pytest fixtures and in-memory stage fakes for FrameReader tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import pytest

from framereader.models.analysis import (
    ActionEntry,
    AssemblyInput,
    AudioResult,
    DialogueEntry,
    DownloadResult,
    FrameInfo,
    TranscriptionResult,
    VisualAnalysis,
)
from framereader.services.job_store import JobStore
from framereader.services.stages import StageExecutors
from framereader.utils.errors import (
    AssemblyError,
    DownloadError,
    MediaExtractionError,
    TranscriptionError,
    VisualAnalysisError,
)

PRIVATE_VIDEO_MESSAGE = (
    "This video appears to be private or restricted. Try uploading the file directly."
)


class FakeClock:
    """Manually advanced clock for the job store."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeDownloader:
    def __init__(self, temp_dir: Path) -> None:
        self.temp_dir = temp_dir
        self.fail = False
        self.calls: List[str] = []

    async def fetch(self, job_id: str, url: str) -> DownloadResult:
        self.calls.append(url)
        if self.fail:
            raise DownloadError("yt-dlp exited with code 1: Private video", PRIVATE_VIDEO_MESSAGE)
        path = self.temp_dir / f"{job_id}_video.mp4"
        path.write_bytes(b"video")
        return DownloadResult(file_path=str(path), title="Test Video", duration=12.0)


class FakeAudioExtractor:
    def __init__(self) -> None:
        self.has_audio = True

    async def extract(self, job_id: str, file_path: str) -> AudioResult:
        if not self.has_audio:
            return AudioResult(has_audio=False)
        return AudioResult(audio_path=f"/tmp/{job_id}_audio.wav", has_audio=True)


class FakeFrameSampler:
    def __init__(self) -> None:
        self.frame_count = 3
        self.fail = False
        self.video_existed: Optional[bool] = None

    async def sample(self, job_id: str, file_path: str, duration: float) -> List[FrameInfo]:
        self.video_existed = Path(file_path).exists()
        if self.fail:
            raise MediaExtractionError("disk full")
        return [
            FrameInfo(frame_path=f"/tmp/{job_id}_frames/frame_{i:04d}.jpg", timestamp=i * 2.0)
            for i in range(self.frame_count)
        ]


class FakeTranscriber:
    def __init__(self) -> None:
        self.fail = False
        self.calls = 0

    async def transcribe(self, job_id: str, audio_path: str) -> TranscriptionResult:
        self.calls += 1
        if self.fail:
            raise TranscriptionError("AssemblyAI transcription error: bad audio")
        return TranscriptionResult(
            dialogue_entries=[
                DialogueEntry(speaker="Speaker A", text="Hello there.", start_time=0.5, end_time=1.5),
                DialogueEntry(speaker="Speaker B", text="General Kenobi.", start_time=2.5, end_time=3.5),
            ],
            speakers=["Speaker A", "Speaker B"],
        )


class FakeVisualAnalyzer:
    def __init__(self) -> None:
        self.fail = False
        self.calls = 0

    async def analyze(
        self, job_id: str, frames: List[FrameInfo], title: str, duration: float
    ) -> VisualAnalysis:
        self.calls += 1
        if self.fail:
            raise VisualAnalysisError("All 1 vision batches failed")
        return VisualAnalysis(
            action_entries=[
                ActionEntry(timestamp=f.timestamp, action=f"Frame at {f.timestamp}s.")
                for f in frames
            ],
            characters=["MAN 1"],
        )


class FakeAssembler:
    def __init__(self) -> None:
        self.fail = False
        self.received: Optional[AssemblyInput] = None

    async def assemble(self, job_id: str, data: AssemblyInput) -> str:
        self.received = data
        if self.fail:
            raise AssemblyError("Script assembly failed: overloaded")
        lines = ["INT. TEST ROOM - DAY"]
        lines += [f"{d.speaker.upper()}\n{d.text}" for d in data.dialogue_entries]
        lines += [a.action for a in data.action_entries]
        return "\n".join(lines)


class FakeCleanup:
    def __init__(self) -> None:
        self.audio_removed: List[str] = []
        self.frames_removed: List[str] = []

    def remove_audio(self, job_id: str) -> None:
        self.audio_removed.append(job_id)

    def remove_frames(self, job_id: str) -> None:
        self.frames_removed.append(job_id)


class FakeProber:
    async def probe_duration(self, file_path: str) -> float:
        return 42.0


def make_fake_stages(temp_dir: Path) -> StageExecutors:
    return StageExecutors(
        downloader=FakeDownloader(temp_dir),
        audio_extractor=FakeAudioExtractor(),
        frame_sampler=FakeFrameSampler(),
        transcriber=FakeTranscriber(),
        visual_analyzer=FakeVisualAnalyzer(),
        assembler=FakeAssembler(),
        cleanup=FakeCleanup(),
        prober=FakeProber(),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> JobStore:
    return JobStore(clock=clock)


@pytest.fixture
def fake_stages(tmp_path: Path) -> StageExecutors:
    return make_fake_stages(tmp_path)
