"""Video downloader backed by the yt-dlp command line tool."""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

from framereader.models.analysis import DownloadResult
from framereader.utils.errors import DownloadError

logger = logging.getLogger(__name__)

YT_DLP_FORMAT = "bestvideo[height<=720]+bestaudio/best[height<=720]"


class YtDlpDownloader:
    """Downloads videos into the temp dir as ``{job_id}_video.<ext>``."""

    def __init__(
        self,
        temp_dir: str,
        timeout_seconds: float = 120,
        cookies_path: Optional[str] = None,
        binary: str = "yt-dlp",
    ) -> None:
        """
        Initialize the YtDlpDownloader.

        Args:
            temp_dir: Directory downloads are written to
            timeout_seconds: Hard limit for the download itself
            cookies_path: Optional cookies.txt passed to yt-dlp
            binary: yt-dlp executable name or path
        """
        self.temp_dir = Path(temp_dir)
        self.timeout_seconds = timeout_seconds
        self.cookies_path = cookies_path
        self.binary = binary

    def _base_args(self) -> List[str]:
        args = ["--no-playlist", "--no-warnings"]
        if self.cookies_path:
            args += ["--cookies", self.cookies_path]
        return args

    async def _run(self, args: List[str], timeout: float) -> tuple[int, str, str]:
        proc = await asyncio.create_subprocess_exec(
            self.binary,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise
        return proc.returncode or 0, stdout.decode(errors="replace"), stderr.decode(errors="replace")

    async def fetch_metadata(self, url: str) -> tuple[str, float]:
        """Title and duration, falling back to ("Untitled", 0.0)."""
        try:
            code, out, err = await self._run(
                ["--dump-json", "--skip-download", *self._base_args(), url],
                timeout=self.timeout_seconds,
            )
            if code != 0:
                raise RuntimeError(err.strip() or f"exit code {code}")
            info = json.loads(out.splitlines()[0])
            title = info.get("title") or "Untitled"
            duration = float(info.get("duration") or 0)
            logger.info(f'Video metadata: "{title}" ({duration}s)')
            return title, duration
        except (OSError, RuntimeError, ValueError, IndexError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not fetch metadata for {url}, continuing with download: {e}")
            return "Untitled", 0.0

    async def fetch(self, job_id: str, url: str) -> DownloadResult:
        """
        Download a video.

        Args:
            job_id: Job the download belongs to
            url: Source video URL

        Returns:
            DownloadResult with local path, title and duration

        Raises:
            DownloadError: On timeout, restricted videos or any yt-dlp failure
        """
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading video for job {job_id}: {url}")

        title, duration = await self.fetch_metadata(url)
        output_template = str(self.temp_dir / f"{job_id}_video.%(ext)s")

        try:
            code, _, err = await self._run(
                [
                    url,
                    "-f", YT_DLP_FORMAT,
                    "--merge-output-format", "mp4",
                    "-o", output_template,
                    *self._base_args(),
                ],
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise DownloadError(
                "Download timed out",
                "Download timed out. Try again or upload the file directly.",
            )
        except OSError as e:
            raise DownloadError(f"Could not run {self.binary}: {e}")

        if code != 0:
            message = f"yt-dlp exited with code {code}: {err.strip()}"
            if "Private" in err or "restricted" in err:
                raise DownloadError(
                    message,
                    "This video appears to be private or restricted. "
                    "Try uploading the file directly.",
                )
            raise DownloadError(message)

        candidates = sorted(
            p for p in self.temp_dir.glob(f"{job_id}_video*") if p.suffix != ".part"
        )
        if not candidates:
            raise DownloadError(
                "No video file found after download",
                "Download appeared to succeed but no file was found. Try again.",
            )

        file_path = str(candidates[0])
        logger.info(f"Video downloaded: {file_path}")
        return DownloadResult(file_path=file_path, title=title, duration=duration)
