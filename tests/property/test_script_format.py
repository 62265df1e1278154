"""Property-based tests for script formatting, scene grouping and frame selection.

Property 10: Assembly Fallback Never Empty
Property 11: Timeline Order
Property 12: Scene Grouping
"""

from datetime import date
from typing import List

from hypothesis import given, settings, strategies as st

from framereader.models.analysis import ActionEntry, AssemblyInput, DialogueEntry, FrameInfo
from framereader.services.assembler import CODE_FENCE_RE, build_assembly_prompt
from framereader.services.media import cap_frames, merge_frames
from framereader.services.script_format import (
    build_scenes,
    build_timeline,
    format_basic_script,
    format_duration,
    format_timestamp,
)

# ==================== Strategies ====================

timestamps = st.floats(min_value=0, max_value=3600, allow_nan=False)
short_text = st.text(
    alphabet=st.characters(whitelist_categories=("L", "N", "Zs")), min_size=1, max_size=30
)

dialogue_entries = st.builds(
    lambda speaker, text, start, length: DialogueEntry(
        speaker=f"Speaker {speaker}", text=text, start_time=start, end_time=start + length
    ),
    st.sampled_from("ABC"),
    short_text,
    timestamps,
    st.floats(min_value=0, max_value=10),
)

action_entries = st.builds(
    ActionEntry,
    timestamp=timestamps,
    action=short_text,
    characters=st.lists(st.sampled_from(["MAN 1", "WOMAN 1"]), max_size=2),
    speaking=st.one_of(st.none(), st.sampled_from(["MAN 1", "WOMAN 1"])),
    confidence=st.sampled_from(["high", "uncertain"]),
)

assembly_inputs = st.builds(
    AssemblyInput,
    title=short_text,
    duration=st.floats(min_value=0, max_value=7200),
    source_url=st.just("https://youtu.be/abc"),
    platform=st.sampled_from(["youtube", "tiktok", "upload", "unknown"]),
    dialogue_entries=st.lists(dialogue_entries, max_size=8),
    action_entries=st.lists(action_entries, max_size=8),
    transcription_failed=st.booleans(),
    visual_failed=st.booleans(),
)


def sample_input(**overrides) -> AssemblyInput:
    values = dict(
        title="Kitchen Talk",
        duration=95.0,
        source_url="https://youtu.be/abc",
        platform="youtube",
        dialogue_entries=[
            DialogueEntry(speaker="Speaker A", text="Pass the salt.", start_time=4.2, end_time=5.0)
        ],
        action_entries=[
            ActionEntry(
                timestamp=2.0,
                action="A man stands at a counter.",
                characters=["MAN 1"],
                speaking="MAN 1",
            ),
            ActionEntry(timestamp=4.2, action="He reaches out.", confidence="uncertain"),
        ],
    )
    values.update(overrides)
    return AssemblyInput(**values)


# ==================== Property Tests ====================


class TestProperty10FallbackNeverEmpty:
    """Property 10: Assembly Fallback Never Empty.

    *For any* accumulated pipeline data, the basic formatter SHALL return a
    non-empty script containing the header and every dialogue line.
    """

    @settings(max_examples=100)
    @given(data=assembly_inputs)
    def test_fallback_non_empty(self, data: AssemblyInput) -> None:
        script = format_basic_script(data, processed=date(2024, 1, 1))
        assert script.strip()
        assert f"TITLE: {data.title}" in script
        assert "PROCESSED: 2024-01-01" in script
        for d in data.dialogue_entries:
            assert f"{d.speaker}: {d.text}" in script
        if not data.dialogue_entries and not data.action_entries:
            assert "[No dialogue or action was detected in this video]" in script

    def test_fallback_layout(self) -> None:
        script = format_basic_script(
            sample_input(visual_failed=True), processed=date(2024, 3, 5)
        )
        lines = script.splitlines()
        assert lines[:5] == [
            "TITLE: Kitchen Talk",
            "SOURCE: https://youtu.be/abc",
            "PLATFORM: Youtube",
            "DURATION: 1:35",
            "PROCESSED: 2024-03-05",
        ]
        assert "[Visual analysis was unavailable for this video]" in lines
        assert "[Audio transcription was unavailable for this video]" not in lines
        body = lines[lines.index("---") + 1 :]
        body = [line for line in body if line.startswith("00:")]
        assert body == [
            "00:02  [A man stands at a counter.]",
            "00:04  Speaker A: Pass the salt.",
            "00:04  [He reaches out.] [check this]",
        ]


class TestProperty11TimelineOrder:
    """Property 11: Timeline Order.

    *For any* dialogue and action entries, the merged timeline SHALL be sorted
    by timestamp and contain every entry exactly once.
    """

    @settings(max_examples=100)
    @given(data=assembly_inputs)
    def test_timeline_sorted_and_complete(self, data: AssemblyInput) -> None:
        timeline = build_timeline(data)
        assert len(timeline) == len(data.dialogue_entries) + len(data.action_entries)
        times = [t for t, _ in timeline]
        assert times == sorted(times)

    def test_dialogue_before_action_at_same_time(self) -> None:
        timeline = build_timeline(sample_input())
        assert [line.split("]")[0] for _, line in timeline] == [
            "[ACTION @ 00:02",
            "[DIALOGUE @ 00:04-00:05",
            "[ACTION @ 00:04",
        ]
        assert timeline[0][1] == (
            "[ACTION @ 00:02] | A man stands at a counter. | "
            "Characters visible: MAN 1 | Appears to be speaking: MAN 1"
        )

    def test_assembly_prompt_mentions_failures_and_timeline(self) -> None:
        prompt = build_assembly_prompt(sample_input(transcription_failed=True))
        assert "Audio transcription failed" in prompt
        assert "Visual analysis failed" not in prompt
        assert '00:04 [DIALOGUE @ 00:04-00:05] Speaker A: "Pass the salt."' in prompt
        assert "TITLE: Kitchen Talk" in prompt


class TestProperty12SceneGrouping:
    """Property 12: Scene Grouping.

    *For any* action entries, scenes SHALL partition the entries in time order,
    splitting exactly where consecutive entries are more than 10 seconds apart.
    """

    @settings(max_examples=100)
    @given(entries=st.lists(action_entries, max_size=20))
    def test_scenes_partition_entries(self, entries: List[ActionEntry]) -> None:
        scenes = build_scenes(entries)
        if not entries:
            assert scenes == []
            return

        ordered = sorted(e.timestamp for e in entries)
        gaps = sum(1 for a, b in zip(ordered, ordered[1:]) if b - a > 10)
        assert len(scenes) == gaps + 1
        assert [s.scene_number for s in scenes] == list(range(1, len(scenes) + 1))
        assert scenes[0].start_time == 0.0
        assert scenes[-1].end_time == ordered[-1]
        for prev, nxt in zip(scenes, scenes[1:]):
            assert nxt.start_time - prev.end_time > 10

    def test_headings(self) -> None:
        entries = [
            ActionEntry(timestamp=t, action=f"Beat {t}.") for t in (3.0, 8.0, 30.0, 31.0)
        ]
        scenes = build_scenes(entries)
        assert [s.heading for s in scenes] == [
            "INT. UNKNOWN LOCATION - DAY",
            "INT. LOCATION 2 - DAY",
        ]
        assert scenes[0].description == "Beat 3.0. Beat 8.0."
        assert (scenes[1].start_time, scenes[1].end_time) == (30.0, 31.0)


class TestFormattingHelpers:
    def test_timestamps(self) -> None:
        assert format_timestamp(0) == "00:00"
        assert format_timestamp(65.9) == "01:05"
        assert format_timestamp(-3) == "00:00"
        assert format_duration(59.6) == "1:00"
        assert format_duration(125) == "2:05"

    def test_code_fences_stripped(self) -> None:
        raw = "```text\nINT. ROOM - DAY\n```"
        assert CODE_FENCE_RE.sub("", raw).strip() == "INT. ROOM - DAY"

    def test_merge_frames_drops_near_duplicates(self) -> None:
        scene = [FrameInfo(frame_path="s0.jpg", timestamp=0.0), FrameInfo(frame_path="s1.jpg", timestamp=21.0)]
        interval = [FrameInfo(frame_path=f"i{t}.jpg", timestamp=t) for t in (0.0, 10.0, 20.0, 30.0)]
        merged = merge_frames(scene, interval)
        assert [f.timestamp for f in merged] == [0.0, 10.0, 21.0, 30.0]

    @settings(max_examples=50)
    @given(n=st.integers(min_value=0, max_value=200), cap=st.integers(min_value=1, max_value=40))
    def test_cap_frames(self, n: int, cap: int) -> None:
        frames = [FrameInfo(frame_path=f"f{i}.jpg", timestamp=float(i)) for i in range(n)]
        capped = cap_frames(frames, cap)
        assert len(capped) <= cap
        assert len(capped) == min(n, cap) or n > cap
        if frames:
            assert capped[0] == frames[0]
