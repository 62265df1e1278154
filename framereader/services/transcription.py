"""Transcription service using the AssemblyAI REST API."""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from framereader.models.analysis import DialogueEntry, TranscriptionResult
from framereader.utils.errors import TranscriptionError
from framereader.utils.retry import with_retry

logger = logging.getLogger(__name__)

# AssemblyAI API endpoint
ASSEMBLYAI_API_URL = "https://api.assemblyai.com/v2"


class AssemblyAIError(TranscriptionError):
    """AssemblyAI API returned an error."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(f"AssemblyAI error {status_code}: {message}")


class TranscriptionService:
    """Speaker-labelled transcription through AssemblyAI."""

    def __init__(
        self,
        assemblyai_api_key: str,
        timeout_seconds: float = 300,
        poll_seconds: float = 3.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the TranscriptionService.

        Args:
            assemblyai_api_key: API key for AssemblyAI
            timeout_seconds: Upper bound for a whole transcription
            poll_seconds: Delay between status polls
            client: Optional preconfigured httpx client (tests)
        """
        self.api_key = assemblyai_api_key
        self.api_url = ASSEMBLYAI_API_URL
        self.timeout_seconds = timeout_seconds
        self.poll_seconds = poll_seconds
        self._client = client

    def _headers(self) -> Dict[str, str]:
        return {"authorization": self.api_key}

    def _client_or_new(self) -> httpx.AsyncClient:
        return self._client or httpx.AsyncClient(timeout=60.0)

    async def _request(
        self, client: httpx.AsyncClient, method: str, path: str, **kwargs: Any
    ) -> Dict[str, Any]:
        try:
            response = await client.request(
                method, f"{self.api_url}{path}", headers=self._headers(), **kwargs
            )
        except httpx.HTTPError as e:
            raise TranscriptionError(f"HTTP error talking to AssemblyAI: {e}")
        if response.status_code >= 400:
            raise AssemblyAIError(response.status_code, response.text)
        return response.json()

    @with_retry(max_attempts=3, base_delay=1.0, exceptions=(TranscriptionError,))
    async def _upload(self, client: httpx.AsyncClient, audio_path: str) -> str:
        data = await asyncio.to_thread(Path(audio_path).read_bytes)
        result = await self._request(client, "POST", "/upload", content=data)
        return result["upload_url"]

    @with_retry(max_attempts=3, base_delay=1.0, exceptions=(TranscriptionError,))
    async def _submit(self, client: httpx.AsyncClient, audio_url: str) -> str:
        result = await self._request(
            client,
            "POST",
            "/transcript",
            json={"audio_url": audio_url, "speaker_labels": True},
        )
        return result["id"]

    async def _poll(self, client: httpx.AsyncClient, transcript_id: str) -> Dict[str, Any]:
        deadline = time.monotonic() + self.timeout_seconds
        while True:
            transcript = await self._request(client, "GET", f"/transcript/{transcript_id}")
            status = transcript.get("status")
            if status == "completed":
                return transcript
            if status == "error":
                raise TranscriptionError(
                    f"AssemblyAI transcription error: {transcript.get('error')}"
                )
            if time.monotonic() >= deadline:
                raise TranscriptionError(
                    f"Transcription {transcript_id} timed out after {self.timeout_seconds}s"
                )
            await asyncio.sleep(self.poll_seconds)

    async def transcribe(self, job_id: str, audio_path: str) -> TranscriptionResult:
        """
        Transcribe an audio file with speaker labels.

        Args:
            job_id: Job the audio belongs to
            audio_path: Local WAV file

        Returns:
            TranscriptionResult with dialogue entries in seconds

        Raises:
            TranscriptionError: If any API step fails or times out
        """
        logger.info(f"Starting transcription for job {job_id}: {audio_path}")

        client = self._client_or_new()
        try:
            upload_url = await self._upload(client, audio_path)
            transcript_id = await self._submit(client, upload_url)
            transcript = await self._poll(client, transcript_id)
        except OSError as e:
            raise TranscriptionError(f"Could not read audio file {audio_path}: {e}")
        finally:
            if self._client is None:
                await client.aclose()

        result = parse_transcript(transcript)
        logger.info(
            f"Transcription complete for job {job_id}: "
            f"{len(result.dialogue_entries)} utterances, {len(result.speakers)} speakers"
        )
        return result


def parse_transcript(transcript: Dict[str, Any]) -> TranscriptionResult:
    """Map AssemblyAI utterances (or, failing that, words) to dialogue entries.

    AssemblyAI reports times in milliseconds; entries are stored in seconds.
    """
    entries: List[DialogueEntry] = []
    speakers: List[str] = []

    def add(speaker: str, text: str, start_ms: float, end_ms: float) -> None:
        label = f"Speaker {speaker}"
        if label not in speakers:
            speakers.append(label)
        entries.append(
            DialogueEntry(
                speaker=label, text=text, start_time=start_ms / 1000, end_time=end_ms / 1000
            )
        )

    utterances = transcript.get("utterances") or []
    if utterances:
        for u in utterances:
            add(u.get("speaker") or "Unknown", u.get("text", ""), u.get("start", 0), u.get("end", 0))
        return TranscriptionResult(dialogue_entries=entries, speakers=speakers)

    # Group consecutive words by speaker.
    chunk: List[Dict[str, Any]] = []
    current = ""
    for word in transcript.get("words") or []:
        speaker = word.get("speaker") or "A"
        if chunk and speaker != current:
            add(current, " ".join(w["text"] for w in chunk), chunk[0]["start"], chunk[-1]["end"])
            chunk = []
        current = speaker
        chunk.append(word)
    if chunk:
        add(current, " ".join(w["text"] for w in chunk), chunk[0]["start"], chunk[-1]["end"])

    return TranscriptionResult(dialogue_entries=entries, speakers=speakers)
