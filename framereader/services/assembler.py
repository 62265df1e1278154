"""Narrative screenplay assembly using a PydanticAI agent."""

import logging
import os
import re
from typing import Optional

from pydantic_ai import Agent

from framereader.models.analysis import AssemblyInput
from framereader.services.script_format import build_timeline, format_header, format_timestamp
from framereader.utils.errors import AssemblyError

logger = logging.getLogger(__name__)

CODE_FENCE_RE = re.compile(r"^```[a-z]*\n?|```$", re.MULTILINE)

ASSEMBLY_SYSTEM_PROMPT = """
You are a professional screenwriter converting video analysis data into a screenplay.
The data includes audio transcription (dialogue with speaker labels) and visual frame
descriptions (settings, characters present, and who appears to be speaking).

DIALOGUE MUST BE INTERLEAVED WITH ACTIONS: walk the merged timeline in order and place
each line of dialogue next to the action beat at its timestamp. Keep complete sentences
together at the timestamp where they begin.

SPEAKER-CHARACTER MATCHING: map each audio speaker label to a visual character using the
"Appears to be speaking" cues, then keep that mapping for the whole screenplay.

CHARACTER NAMING: short role or appearance names (MAN 1, INSTRUCTOR, CUSTOMER).

FORMAT: ALL CAPS scene headings (INT./EXT.), ALL CAPS character names above dialogue,
every spoken word written out, one-sentence action lines, timestamp markers as comments
before each action beat (// [00:00:02]). No on-screen text or captions.

OUTPUT: the complete screenplay as plain text, starting with the metadata header.
"""


def build_assembly_prompt(data: AssemblyInput) -> str:
    """User prompt for the assembly agent."""
    lines = ["Merge the following video analysis data into a professional screenplay."]

    if data.dialogue_entries:
        lines.append(
            f"\nIMPORTANT: There are {len(data.dialogue_entries)} dialogue entries from "
            f"{len(data.speakers)} distinct speaker(s). Write out ALL dialogue completely."
        )
    if data.transcription_failed:
        lines.append("\nNOTE: Audio transcription failed. Script will be visual descriptions only.")
    if data.visual_failed:
        lines.append("\nNOTE: Visual analysis failed. Script will be dialogue/transcript only.")

    lines.append(f"\nAUDIO SPEAKERS DETECTED: {', '.join(data.speakers) or 'None'}")
    lines.append(f"CHARACTERS SEEN ON SCREEN: {', '.join(data.characters) or 'None'}")

    if data.scenes:
        lines.append("\nSCENES:")
        for scene in data.scenes:
            lines.append(
                f"{scene.scene_number}. {format_timestamp(scene.start_time)}-"
                f"{format_timestamp(scene.end_time)} {scene.description}"
            )

    lines.append("\nMERGED TIMELINE (chronological):")
    for timestamp, content in build_timeline(data):
        lines.append(f"{format_timestamp(timestamp)} {content}")

    lines.append("\nStart with this metadata header:")
    lines.extend(format_header(data))
    lines.append('BACKGROUND MUSIC: [Note if detected from descriptions, or "None detected"]')
    return "\n".join(lines)


class ScriptAssembler:
    """Turns accumulated pipeline data into screenplay text."""

    def __init__(
        self,
        model: str = "anthropic:claude-sonnet-4-20250514",
        agent: Optional[Agent[None, str]] = None,
    ) -> None:
        self.model = model
        self._agent = agent

    def _get_agent(self) -> Agent[None, str]:
        if self._agent is None:
            self._agent = Agent(
                self.model,
                system_prompt=ASSEMBLY_SYSTEM_PROMPT,
                output_type=str,
            )
        return self._agent

    async def assemble(self, job_id: str, data: AssemblyInput) -> str:
        """
        Write the screenplay.

        Raises:
            AssemblyError: If the agent fails or returns nothing usable
        """
        logger.info(f"Assembling script for job {job_id}")

        try:
            result = await self._get_agent().run(build_assembly_prompt(data))
        except Exception as e:
            raise AssemblyError(f"Script assembly failed: {e}")

        script = CODE_FENCE_RE.sub("", result.output or "").strip()
        if not script:
            raise AssemblyError("Assembly agent returned an empty script")

        logger.info(f"Script assembled for job {job_id}: {len(script)} chars")
        return script


def create_script_assembler() -> ScriptAssembler:
    """Create a ScriptAssembler using application settings."""
    from framereader.config import get_settings

    settings = get_settings()

    # Set environment variable for pydantic-ai to pick up
    if settings.anthropic_api_key:
        os.environ["ANTHROPIC_API_KEY"] = settings.anthropic_api_key

    return ScriptAssembler(model=settings.assembly_model)
