"""Pydantic models for stage inputs and outputs.

All timeline values (dialogue start/end, action timestamps, scene bounds,
durations) are expressed in seconds.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Platform = Literal["youtube", "tiktok", "instagram", "vimeo", "upload", "unknown"]

Confidence = Literal["high", "uncertain"]


class DialogueEntry(BaseModel):
    """A single utterance from the audio transcription."""

    speaker: str
    text: str
    start_time: float = Field(ge=0)
    end_time: float = Field(ge=0)


class ActionEntry(BaseModel):
    """A brief visual description of one sampled frame."""

    timestamp: float = Field(ge=0)
    action: str
    characters: List[str] = Field(default_factory=list)
    speaking: Optional[str] = None
    confidence: Confidence = "high"


class Scene(BaseModel):
    """A group of action entries without a significant time gap."""

    scene_number: int = Field(ge=1)
    start_time: float
    end_time: float
    heading: str
    description: str = ""


class VideoMetadata(BaseModel):
    title: Optional[str] = None
    duration: Optional[float] = None
    source_url: Optional[str] = None


class TranscriptionResult(BaseModel):
    dialogue_entries: List[DialogueEntry] = Field(default_factory=list)
    speakers: List[str] = Field(default_factory=list)


class VisualAnalysis(BaseModel):
    action_entries: List[ActionEntry] = Field(default_factory=list)
    characters: List[str] = Field(default_factory=list)
    scenes: List[Scene] = Field(default_factory=list)


class DownloadResult(BaseModel):
    file_path: str = Field(min_length=1)
    title: str = "Untitled"
    duration: float = 0.0


class AudioResult(BaseModel):
    """Result of audio extraction; a missing audio track is data, not an error."""

    audio_path: str = ""
    has_audio: bool = False
    extraction_error: Optional[str] = None


class FrameInfo(BaseModel):
    frame_path: str
    timestamp: float = Field(ge=0)


class AssemblyInput(BaseModel):
    """Everything the assembler needs to write the screenplay."""

    title: str
    duration: float
    source_url: str
    platform: Platform
    dialogue_entries: List[DialogueEntry] = Field(default_factory=list)
    action_entries: List[ActionEntry] = Field(default_factory=list)
    speakers: List[str] = Field(default_factory=list)
    characters: List[str] = Field(default_factory=list)
    scenes: List[Scene] = Field(default_factory=list)
    transcription_failed: bool = False
    visual_failed: bool = False
