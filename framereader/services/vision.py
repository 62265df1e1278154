"""Visual analysis of sampled frames using a PydanticAI vision agent."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, Field
from pydantic_ai import Agent, BinaryContent

from framereader.models.analysis import ActionEntry, FrameInfo, VisualAnalysis
from framereader.services.script_format import build_scenes
from framereader.utils.errors import VisualAnalysisError
from framereader.utils.retry import with_retry

logger = logging.getLogger(__name__)

VISION_SYSTEM_PROMPT = """
You are a script supervisor noting BRIEF location and character details from video frames.
Your descriptions supplement spoken dialogue; they are NOT the main content.

Write SHORT descriptions (1 sentence max per frame). Focus ONLY on:
- Location/setting (INT/EXT, what kind of place)
- Who is present (brief physical description for identification only)
- Significant physical actions (handing something over, entering a room)
- WHO APPEARS TO BE SPEAKING: open mouth, talking gestures, addressing others.
  This is critical for matching audio to characters.

IGNORE on-screen text, subtitles, captions, graphics, watermarks, facial expressions,
camera movements and background props.
"""


class FrameDescription(BaseModel):
    """Agent output for one frame."""

    timestamp: float = Field(ge=0, description="Frame timestamp in seconds")
    action: str = Field(description="1 sentence: location + what is physically happening")
    characters: List[str] = Field(default_factory=list)
    speaking: Optional[str] = Field(
        default=None, description="Who appears to be talking, or null"
    )


class FrameBatch(BaseModel):
    frames: List[FrameDescription] = Field(default_factory=list)


def build_batch_prompt(
    frames: List[FrameInfo],
    title: str,
    duration: float,
    batch_index: int,
    previous_context: str,
) -> str:
    timestamps = ", ".join(f"{f.timestamp:.1f}s" for f in frames)
    prompt = (
        f'Video: "{title}" ({round(duration)}s total)\n'
        f"Batch {batch_index + 1}, frames at timestamps: {timestamps}\n"
    )
    if previous_context:
        prompt += f"\nPrevious scene context: {previous_context}\n"
    prompt += (
        "\nFor each frame, provide a BRIEF (1 sentence) description of the setting and action. "
        "Note which character appears to be ACTIVELY SPEAKING; use null if nobody clearly is."
    )
    return prompt


class VisionAnalyzer:
    """Describes frames in batches, carrying context from one batch to the next."""

    def __init__(
        self,
        model: str = "anthropic:claude-sonnet-4-20250514",
        batch_size: int = 6,
        agent: Optional[Agent[None, FrameBatch]] = None,
    ) -> None:
        """
        Initialize the VisionAnalyzer.

        Args:
            model: PydanticAI model name
            batch_size: Frames sent per request
            agent: Preconfigured agent (tests)
        """
        self.model = model
        self.batch_size = max(1, batch_size)
        self._agent = agent

    def _get_agent(self) -> Agent[None, FrameBatch]:
        if self._agent is None:
            self._agent = Agent(
                self.model,
                system_prompt=VISION_SYSTEM_PROMPT,
                output_type=FrameBatch,
                retries=2,
            )
        return self._agent

    @with_retry(max_attempts=3, base_delay=5.0, exceptions=(Exception,))
    async def _describe_batch(self, content: List[Any]) -> FrameBatch:
        result = await self._get_agent().run(content)
        return result.output

    async def analyze(
        self, job_id: str, frames: List[FrameInfo], title: str, duration: float
    ) -> VisualAnalysis:
        """
        Describe every frame and group the descriptions into scenes.

        Failed batches are skipped; the analysis fails only if no batch
        produced anything.

        Raises:
            VisualAnalysisError: If every batch failed
        """
        logger.info(f"Starting visual analysis for job {job_id}: {len(frames)} frames")

        entries: List[ActionEntry] = []
        characters: List[str] = []
        previous_context = ""
        attempted = failed = 0

        for batch_index in range(0, len(frames), self.batch_size):
            batch = frames[batch_index : batch_index + self.batch_size]
            images = []
            for frame in batch:
                path = Path(frame.frame_path)
                if path.exists():
                    images.append(
                        BinaryContent(
                            data=await asyncio.to_thread(path.read_bytes),
                            media_type="image/jpeg",
                        )
                    )
            if not images:
                continue

            attempted += 1
            prompt = build_batch_prompt(
                batch, title, duration, batch_index // self.batch_size, previous_context
            )
            try:
                described = await self._describe_batch([prompt, *images])
            except Exception as e:
                failed += 1
                logger.error(f"Vision batch {batch_index // self.batch_size} failed for job {job_id}: {e}")
                continue

            for item in described.frames:
                entries.append(
                    ActionEntry(
                        timestamp=item.timestamp,
                        action=item.action,
                        characters=item.characters,
                        speaking=item.speaking,
                    )
                )
                for name in item.characters:
                    if name not in characters:
                        characters.append(name)
            if described.frames:
                last = described.frames[-1]
                previous_context = f"At {last.timestamp}s: {last.action}"

        if attempted and failed == attempted:
            raise VisualAnalysisError(f"All {attempted} vision batches failed for job {job_id}")

        entries.sort(key=lambda e: e.timestamp)
        result = VisualAnalysis(
            action_entries=entries, characters=characters, scenes=build_scenes(entries)
        )
        logger.info(
            f"Visual analysis complete for job {job_id}: {len(entries)} actions, "
            f"{len(characters)} characters, {len(result.scenes)} scenes"
        )
        return result


def create_vision_analyzer() -> VisionAnalyzer:
    """Create a VisionAnalyzer using application settings."""
    from framereader.config import get_settings

    settings = get_settings()

    # Set environment variable for pydantic-ai to pick up
    if settings.anthropic_api_key:
        os.environ["ANTHROPIC_API_KEY"] = settings.anthropic_api_key

    return VisionAnalyzer(model=settings.vision_model, batch_size=settings.vision_batch_size)
