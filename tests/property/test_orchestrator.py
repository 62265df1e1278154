"""Tests for the pipeline orchestrator.

Property 8: Partial Failure Tolerance
Property 10: Assembly Fallback
"""

from pathlib import Path

import pytest

from framereader.services.job_store import JobStore
from framereader.services.orchestrator import PipelineOrchestrator
from framereader.services.stages import StageExecutors
from framereader.utils.errors import GENERIC_USER_MESSAGE
from tests.conftest import PRIVATE_VIDEO_MESSAGE


def url_job(store: JobStore) -> str:
    job = store.create("youtube", video_url="https://youtube.com/watch?v=abc")
    store.set_status(job.job_id, "processing")
    return job.job_id


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_url_job_completes(self, store: JobStore, fake_stages: StageExecutors) -> None:
        job_id = url_job(store)
        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "complete"
        assert job.completed_at is not None
        assert job.error is None
        assert job.stage_errors == {}
        assert job.stages.model_dump() == {
            "download": "complete",
            "transcription": "complete",
            "visual": "complete",
            "assembly": "complete",
        }
        assert job.metadata.title == "Test Video"
        assert job.metadata.duration == 12.0
        assert job.metadata.source_url == "https://youtube.com/watch?v=abc"
        assert job.script.startswith("INT. TEST ROOM - DAY")
        assert "Hello there." in job.script
        assert len(job.transcription.dialogue_entries) == 2
        assert len(job.visual_analysis.action_entries) == 3

    @pytest.mark.asyncio
    async def test_assembler_receives_accumulated_data(
        self, store: JobStore, fake_stages: StageExecutors
    ) -> None:
        job_id = url_job(store)
        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        data = fake_stages.assembler.received
        assert data.title == "Test Video"
        assert data.platform == "youtube"
        assert data.speakers == ["Speaker A", "Speaker B"]
        assert data.characters == ["MAN 1"]
        assert not data.transcription_failed
        assert not data.visual_failed

    @pytest.mark.asyncio
    async def test_upload_job_skips_download(
        self, store: JobStore, fake_stages: StageExecutors, tmp_path: Path
    ) -> None:
        video = tmp_path / "upload.mp4"
        video.write_bytes(b"video")
        job = store.create("upload", file_path=str(video))
        store.set_status(job.job_id, "processing")

        await PipelineOrchestrator(store, fake_stages).process_job(job.job_id)

        current = store.get(job.job_id)
        assert current.status == "complete"
        assert current.stages.download == "skipped"
        assert current.metadata.title == "Untitled"
        assert current.metadata.duration == 42.0
        assert fake_stages.downloader.calls == []
        assert fake_stages.assembler.received.source_url == "File upload"
        assert not video.exists()

    @pytest.mark.asyncio
    async def test_video_deleted_after_extraction(
        self, store: JobStore, fake_stages: StageExecutors, tmp_path: Path
    ) -> None:
        job_id = url_job(store)
        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        assert fake_stages.frame_sampler.video_existed is True
        assert not (tmp_path / f"{job_id}_video.mp4").exists()
        assert fake_stages.cleanup.audio_removed == [job_id]
        assert fake_stages.cleanup.frames_removed == [job_id]

    @pytest.mark.asyncio
    async def test_unknown_job_is_ignored(
        self, store: JobStore, fake_stages: StageExecutors
    ) -> None:
        await PipelineOrchestrator(store, fake_stages).process_job("missing")
        assert store.count() == 0


class TestProperty8PartialFailureTolerance:
    """Property 8: Partial Failure Tolerance.

    A single failed analysis stage SHALL leave the job complete with the
    failure recorded per stage; only when both fail SHALL the job end in
    error with stage ``pipeline``.
    """

    @pytest.mark.asyncio
    async def test_both_analyses_fail(self, store: JobStore, fake_stages: StageExecutors) -> None:
        fake_stages.transcriber.fail = True
        fake_stages.visual_analyzer.fail = True
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "error"
        assert job.error.stage == "pipeline"
        assert job.error.user_message == GENERIC_USER_MESSAGE
        assert job.stages.transcription == "error"
        assert job.stages.visual == "error"
        assert job.stages.assembly == "pending"
        assert set(job.stage_errors) == {"transcription", "visual"}
        assert job.script is None
        assert fake_stages.assembler.received is None

    @pytest.mark.asyncio
    async def test_only_visual_fails(self, store: JobStore, fake_stages: StageExecutors) -> None:
        fake_stages.visual_analyzer.fail = True
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "complete"
        assert job.stages.visual == "error"
        assert job.stages.transcription == "complete"
        assert job.stage_errors["visual"].stage == "visual"
        assert "General Kenobi." in job.script
        assert fake_stages.assembler.received.visual_failed is True
        assert fake_stages.cleanup.frames_removed == [job_id]

    @pytest.mark.asyncio
    async def test_only_transcription_fails(
        self, store: JobStore, fake_stages: StageExecutors
    ) -> None:
        fake_stages.transcriber.fail = True
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "complete"
        assert job.stages.transcription == "error"
        assert job.stages.visual == "complete"
        assert job.stage_errors["transcription"].stage == "transcription"
        assert fake_stages.assembler.received.transcription_failed is True
        assert fake_stages.assembler.received.dialogue_entries == []

    @pytest.mark.asyncio
    async def test_no_audio_skips_transcription(
        self, store: JobStore, fake_stages: StageExecutors
    ) -> None:
        fake_stages.audio_extractor.has_audio = False
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "complete"
        assert job.stages.transcription == "skipped"
        assert fake_stages.transcriber.calls == 0
        assert "transcription" not in job.stage_errors

    @pytest.mark.asyncio
    async def test_no_frames_skips_visual(
        self, store: JobStore, fake_stages: StageExecutors
    ) -> None:
        fake_stages.frame_sampler.frame_count = 0
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "complete"
        assert job.stages.visual == "skipped"
        assert fake_stages.visual_analyzer.calls == 0

    @pytest.mark.asyncio
    async def test_skipped_and_failed_still_completes(
        self, store: JobStore, fake_stages: StageExecutors
    ) -> None:
        # A skip is not a failure, so one failure alone never aborts.
        fake_stages.audio_extractor.has_audio = False
        fake_stages.visual_analyzer.fail = True
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "complete"
        assert job.script

    @pytest.mark.asyncio
    async def test_download_failure_is_fatal(
        self, store: JobStore, fake_stages: StageExecutors
    ) -> None:
        fake_stages.downloader.fail = True
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "error"
        assert job.error.stage == "download"
        assert job.error.user_message == PRIVATE_VIDEO_MESSAGE
        assert "Private video" in job.error.message
        assert job.stages.download == "error"
        assert job.stages.transcription == "pending"
        assert fake_stages.transcriber.calls == 0

    @pytest.mark.asyncio
    async def test_untagged_failure_gets_generic_message(
        self, store: JobStore, fake_stages: StageExecutors
    ) -> None:
        async def broken_fetch(job_id: str, url: str) -> None:
            raise OSError("connection reset")

        fake_stages.downloader.fetch = broken_fetch
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "error"
        assert job.error.stage == "pipeline"
        assert job.error.message == "connection reset"
        assert job.error.user_message == GENERIC_USER_MESSAGE
        assert job.stages.download == "error"

    @pytest.mark.asyncio
    async def test_frame_extraction_failure_is_fatal(
        self, store: JobStore, fake_stages: StageExecutors, tmp_path: Path
    ) -> None:
        fake_stages.frame_sampler.fail = True
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "error"
        assert job.error.stage == "extraction"
        assert not (tmp_path / f"{job_id}_video.mp4").exists()
        assert fake_stages.cleanup.audio_removed == [job_id]
        assert fake_stages.cleanup.frames_removed == [job_id]


class TestProperty10AssemblyFallback:
    """Property 10: Assembly Fallback.

    *For any* assembly failure, the job SHALL complete with a non-empty
    script produced by the basic formatter.
    """

    @pytest.mark.asyncio
    async def test_assembly_failure_falls_back(
        self, store: JobStore, fake_stages: StageExecutors
    ) -> None:
        fake_stages.assembler.fail = True
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "complete"
        assert job.stages.assembly == "complete"
        assert "Script formatting was simplified" in job.script
        assert "00:00  Speaker A: Hello there." in job.script
        assert "TITLE: Test Video" in job.script

    @pytest.mark.asyncio
    async def test_empty_assembly_falls_back(
        self, store: JobStore, fake_stages: StageExecutors
    ) -> None:
        async def blank(job_id, data):
            return "   "

        fake_stages.assembler.assemble = blank
        job_id = url_job(store)

        await PipelineOrchestrator(store, fake_stages).process_job(job_id)

        job = store.get(job_id)
        assert job.status == "complete"
        assert "Script formatting was simplified" in job.script
