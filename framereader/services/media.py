"""Audio extraction, frame sampling and temp cleanup via ffmpeg/ffprobe.

Temp layout per job: ``{job_id}_audio.wav`` and ``{job_id}_frames/``.
"""

import asyncio
import json
import logging
import re
import shutil
from pathlib import Path
from typing import List, Optional

from framereader.models.analysis import AudioResult, FrameInfo
from framereader.utils.errors import MediaExtractionError

logger = logging.getLogger(__name__)

PTS_TIME_RE = re.compile(r"pts_time:(\d+\.?\d*)")
PROBE_OFFSETS = [0, 2, 5, 10, 20, 30, 60, 90, 120]
SHORT_VIDEO_SECONDS = 30
MIN_SCENE_FRAMES = 5
MERGE_WINDOW_SECONDS = 2.0


async def _run(*args: str) -> tuple[int, str, str]:
    proc = await asyncio.create_subprocess_exec(
        *args, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
    )
    stdout, stderr = await proc.communicate()
    return proc.returncode or 0, stdout.decode(errors="replace"), stderr.decode(errors="replace")


class FFprobe:
    """Stream and duration probing."""

    def __init__(self, binary: str = "ffprobe") -> None:
        self.binary = binary

    async def probe(self, file_path: str) -> Optional[dict]:
        try:
            code, out, err = await _run(
                self.binary, "-v", "error", "-print_format", "json",
                "-show_format", "-show_streams", file_path,
            )
        except OSError as e:
            logger.warning(f"ffprobe could not run: {e}")
            return None
        if code != 0:
            logger.warning(f"ffprobe failed for {file_path}: {err.strip()}")
            return None
        try:
            return json.loads(out)
        except ValueError:
            return None

    async def probe_duration(self, file_path: str) -> float:
        info = await self.probe(file_path)
        try:
            return float((info or {}).get("format", {}).get("duration") or 0)
        except (TypeError, ValueError):
            return 0.0

    async def has_audio_stream(self, file_path: str) -> bool:
        info = await self.probe(file_path)
        return any(s.get("codec_type") == "audio" for s in (info or {}).get("streams", []))


class FFmpegAudioExtractor:
    """Extracts 16 kHz mono PCM audio for transcription."""

    def __init__(self, temp_dir: str, prober: FFprobe, binary: str = "ffmpeg") -> None:
        self.temp_dir = Path(temp_dir)
        self.prober = prober
        self.binary = binary

    def audio_path(self, job_id: str) -> Path:
        return self.temp_dir / f"{job_id}_audio.wav"

    async def extract(self, job_id: str, file_path: str) -> AudioResult:
        """Never raises: failures come back as ``has_audio=False``."""
        logger.info(f"Extracting audio for job {job_id} from {file_path}")

        if not await self.prober.has_audio_stream(file_path):
            logger.info(f"No audio stream found in {file_path}")
            return AudioResult(has_audio=False)

        audio_path = self.audio_path(job_id)
        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            code, _, err = await _run(
                self.binary, "-y", "-i", file_path, "-vn",
                "-acodec", "pcm_s16le", "-ar", "16000", "-ac", "1", str(audio_path),
            )
        except OSError as e:
            code, err = -1, str(e)

        if code != 0:
            logger.error(f"Audio extraction failed for job {job_id}: {err.strip()[-500:]}")
            return AudioResult(has_audio=False, extraction_error=err.strip()[-500:] or "ffmpeg failed")

        logger.info(f"Audio extracted: {audio_path}")
        return AudioResult(audio_path=str(audio_path), has_audio=True)


class FFmpegFrameSampler:
    """Samples representative JPEG frames.

    Short videos are sampled every 2 seconds. Longer ones use scene
    detection, topped up with 10 second interval samples when scene
    detection finds too little. Unknown durations fall back to fixed probe
    offsets. Output is capped at ``max_frames``.
    """

    def __init__(
        self,
        temp_dir: str,
        prober: FFprobe,
        max_frames: int = 40,
        scene_threshold: float = 0.3,
        resolution: int = 720,
        quality: int = 80,
        binary: str = "ffmpeg",
    ) -> None:
        self.temp_dir = Path(temp_dir)
        self.prober = prober
        self.max_frames = max_frames
        self.scene_threshold = scene_threshold
        self.resolution = resolution
        self.quality = quality
        self.binary = binary

    def frames_dir(self, job_id: str) -> Path:
        return self.temp_dir / f"{job_id}_frames"

    async def sample(self, job_id: str, file_path: str, duration: float) -> List[FrameInfo]:
        frames_dir = self.frames_dir(job_id)
        try:
            frames_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MediaExtractionError(f"Cannot create frames dir {frames_dir}: {e}")

        logger.info(f"Sampling frames for job {job_id} (duration: {duration}s)")

        if not duration:
            duration = await self.prober.probe_duration(file_path)

        if not duration:
            logger.warning(f"Duration unknown for job {job_id}, extracting probe frames")
            return await self._sample_probe_offsets(file_path, frames_dir)

        if duration <= SHORT_VIDEO_SECONDS:
            frames = await self._sample_intervals(file_path, frames_dir, 2, duration)
        else:
            frames = await self._sample_scenes(file_path, frames_dir, duration)
            if len(frames) < MIN_SCENE_FRAMES:
                logger.info(
                    f"Scene detection yielded only {len(frames)} frames, adding interval samples"
                )
                interval = await self._sample_intervals(file_path, frames_dir, 10, duration)
                frames = merge_frames(frames, interval)

        frames = cap_frames(frames, self.max_frames)
        logger.info(f"Sampled {len(frames)} frames for job {job_id}")
        return frames

    async def _extract_frame(self, file_path: str, timestamp: float, output: Path) -> bool:
        qscale = round((100 - self.quality) / 3.33)
        try:
            code, _, _ = await _run(
                self.binary, "-y", "-ss", str(timestamp), "-i", file_path,
                "-frames:v", "1", "-vf", f"scale=-1:{self.resolution}",
                "-q:v", str(qscale), str(output),
            )
        except OSError as e:
            raise MediaExtractionError(f"Could not run {self.binary}: {e}")
        return code == 0 and output.exists()

    async def _sample_probe_offsets(self, file_path: str, frames_dir: Path) -> List[FrameInfo]:
        frames: List[FrameInfo] = []
        for i, ts in enumerate(PROBE_OFFSETS):
            path = frames_dir / f"frame_probe_{i:04d}.jpg"
            if not await self._extract_frame(file_path, ts, path):
                # Past the end of the video.
                break
            frames.append(FrameInfo(frame_path=str(path), timestamp=ts))
        return frames

    async def _sample_intervals(
        self, file_path: str, frames_dir: Path, interval: float, duration: float
    ) -> List[FrameInfo]:
        frames: List[FrameInfo] = []
        count = min(int(duration // interval), self.max_frames)
        for i in range(count):
            ts = i * interval
            path = frames_dir / f"frame_interval_{i:04d}.jpg"
            if await self._extract_frame(file_path, ts, path):
                frames.append(FrameInfo(frame_path=str(path), timestamp=ts))
            else:
                logger.warning(f"Failed to extract interval frame at {ts}s")
        return frames

    async def detect_scene_changes(self, file_path: str) -> List[float]:
        try:
            _, _, err = await _run(
                self.binary, "-i", file_path,
                "-vf", f"select='gt(scene,{self.scene_threshold})',showinfo",
                "-vsync", "vfr", "-f", "null", "-",
            )
        except OSError as e:
            raise MediaExtractionError(f"Could not run {self.binary}: {e}")
        return [float(m) for m in PTS_TIME_RE.findall(err)]

    async def _sample_scenes(
        self, file_path: str, frames_dir: Path, duration: float
    ) -> List[FrameInfo]:
        timestamps = await self.detect_scene_changes(file_path)
        logger.debug(f"Scene detection found {len(timestamps)} changes")

        # Scene detection only reports changes, so the opening shot is never in it.
        if not timestamps or timestamps[0] > 1.5:
            timestamps.insert(0, 0.0)
        if duration - timestamps[-1] > 5:
            timestamps.append(max(0.0, duration - 2))

        if len(timestamps) > self.max_frames:
            step = -(-len(timestamps) // self.max_frames)
            timestamps = timestamps[::step]

        frames: List[FrameInfo] = []
        for i, ts in enumerate(timestamps):
            path = frames_dir / f"frame_{i:04d}.jpg"
            if await self._extract_frame(file_path, ts, path):
                frames.append(FrameInfo(frame_path=str(path), timestamp=ts))
            else:
                logger.warning(f"Failed to extract frame at {ts}s")
        return frames


def merge_frames(scene_frames: List[FrameInfo], interval_frames: List[FrameInfo]) -> List[FrameInfo]:
    """Add interval frames not within 2 seconds of an existing one, sorted by time."""
    merged = list(scene_frames)
    for frame in interval_frames:
        if all(abs(f.timestamp - frame.timestamp) >= MERGE_WINDOW_SECONDS for f in merged):
            merged.append(frame)
    return sorted(merged, key=lambda f: f.timestamp)


def cap_frames(frames: List[FrameInfo], max_frames: int) -> List[FrameInfo]:
    """Evenly thin ``frames`` down to at most ``max_frames``."""
    if len(frames) <= max_frames:
        return frames
    step = -(-len(frames) // max_frames)
    return frames[::step][:max_frames]


class TempFileCleanup:
    """Best-effort removal of a job's audio and frame artifacts."""

    def __init__(self, temp_dir: str) -> None:
        self.temp_dir = Path(temp_dir)

    def remove_audio(self, job_id: str) -> None:
        path = self.temp_dir / f"{job_id}_audio.wav"
        try:
            path.unlink(missing_ok=True)
            logger.debug(f"Cleaned up audio: {path}")
        except OSError as e:
            logger.debug(f"Could not remove {path}: {e}")

    def remove_frames(self, job_id: str) -> None:
        path = self.temp_dir / f"{job_id}_frames"
        shutil.rmtree(path, ignore_errors=True)
        logger.debug(f"Cleaned up frames: {path}")
