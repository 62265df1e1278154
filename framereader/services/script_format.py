"""Deterministic screenplay formatting helpers.

``format_basic_script`` is the fallback used when narrative assembly fails.
It only formats data already in hand and never raises on valid input.
"""

from datetime import date
from typing import List, Optional, Tuple

from framereader.models.analysis import ActionEntry, AssemblyInput, Scene

SCENE_GAP_SECONDS = 10.0


def format_timestamp(seconds: float) -> str:
    """MM:SS for a position in the video."""
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


def format_duration(seconds: float) -> str:
    """M:SS for a video length."""
    minutes = int(max(0.0, seconds) // 60)
    secs = round(max(0.0, seconds) % 60)
    if secs == 60:
        minutes, secs = minutes + 1, 0
    return f"{minutes}:{secs:02d}"


def format_header(data: AssemblyInput, processed: Optional[date] = None) -> List[str]:
    """Metadata header shared by the assembler prompt and the fallback."""
    processed = processed or date.today()
    return [
        f"TITLE: {data.title}",
        f"SOURCE: {data.source_url}",
        f"PLATFORM: {data.platform.capitalize()}",
        f"DURATION: {format_duration(data.duration)}",
        f"PROCESSED: {processed.isoformat()}",
    ]


def build_timeline(data: AssemblyInput) -> List[Tuple[float, str]]:
    """Merge dialogue and action entries into (timestamp, line) pairs.

    Sorting is stable, so at equal timestamps dialogue precedes action.
    """
    entries: List[Tuple[float, str]] = []

    for d in data.dialogue_entries:
        entries.append(
            (
                d.start_time,
                f"[DIALOGUE @ {format_timestamp(d.start_time)}-{format_timestamp(d.end_time)}] "
                f'{d.speaker}: "{d.text}"',
            )
        )

    for a in data.action_entries:
        parts = [f"[ACTION @ {format_timestamp(a.timestamp)}]", a.action]
        if a.characters:
            parts.append(f"Characters visible: {', '.join(a.characters)}")
        if a.speaking:
            parts.append(f"Appears to be speaking: {a.speaking}")
        entries.append((a.timestamp, " | ".join(parts)))

    entries.sort(key=lambda e: e[0])
    return entries


def format_basic_script(data: AssemblyInput, processed: Optional[date] = None) -> str:
    """
    Plain chronological listing of dialogue and actions.

    Args:
        data: Accumulated pipeline output
        processed: Date for the header (defaults to today)

    Returns:
        Non-empty script text
    """
    lines = format_header(data, processed)
    lines += [
        "BACKGROUND MUSIC: None detected",
        "",
        "NOTE: Script formatting was simplified due to a processing issue.",
        "",
        "---",
        "",
    ]

    if data.transcription_failed:
        lines += ["[Audio transcription was unavailable for this video]", ""]
    if data.visual_failed:
        lines += ["[Visual analysis was unavailable for this video]", ""]

    entries: List[Tuple[float, str]] = []
    for d in data.dialogue_entries:
        entries.append((d.start_time, f"{d.speaker}: {d.text}"))
    for a in data.action_entries:
        check = " [check this]" if a.confidence == "uncertain" else ""
        entries.append((a.timestamp, f"[{a.action}]{check}"))
    entries.sort(key=lambda e: e[0])

    for timestamp, text in entries:
        lines.append(f"{format_timestamp(timestamp)}  {text}")

    if not entries:
        lines.append("[No dialogue or action was detected in this video]")

    return "\n".join(lines)


def build_scenes(entries: List[ActionEntry]) -> List[Scene]:
    """Group action entries into scenes, splitting on gaps over 10 seconds."""
    if not entries:
        return []

    ordered = sorted(entries, key=lambda e: e.timestamp)
    groups: List[List[ActionEntry]] = [[ordered[0]]]
    for prev, entry in zip(ordered, ordered[1:]):
        if entry.timestamp - prev.timestamp > SCENE_GAP_SECONDS:
            groups.append([])
        groups[-1].append(entry)

    scenes: List[Scene] = []
    for number, group in enumerate(groups, start=1):
        scenes.append(
            Scene(
                scene_number=number,
                start_time=0.0 if number == 1 else group[0].timestamp,
                end_time=group[-1].timestamp,
                heading=(
                    "INT. UNKNOWN LOCATION - DAY"
                    if number == 1
                    else f"INT. LOCATION {number} - DAY"
                ),
                description=" ".join(e.action for e in group),
            )
        )
    return scenes
