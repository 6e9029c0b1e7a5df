from __future__ import annotations

from types import SimpleNamespace

import pytest
from pydub import AudioSegment
from pydub.generators import Sine

from dubbing_agent.config import SilenceConfig
from dubbing_agent.errors import CommandError
from dubbing_agent.silence import (
    analyze_silences,
    classify_intervals,
    detect_silences,
    merge_intervals,
    parse_silencedetect_report,
    summarize,
)
from dubbing_agent.types import SilenceInterval, SilenceType

REPORT = """
[silencedetect @ 0x55] silence_start: 0.5
[silencedetect @ 0x55] silence_end: 0.58 | silence_duration: 0.08
size=N/A time=00:00:05.00 bitrate=N/A
[silencedetect @ 0x55] silence_start: 1.2
[silencedetect @ 0x55] silence_end: 2.7 | silence_duration: 1.5
[silencedetect @ 0x55] silence_start: 4.9
"""


@pytest.mark.parametrize(
    "duration, expected",
    [
        (0.05, SilenceType.INTER_WORD),
        (0.1, SilenceType.PAUSE),
        (0.29, SilenceType.PAUSE),
        (0.3, SilenceType.BREATH),
        (0.99, SilenceType.BREATH),
        (1.0, SilenceType.LONG_PAUSE),
        (12.0, SilenceType.LONG_PAUSE),
    ],
)
def test_classify_by_duration(duration, expected):
    assert SilenceType.classify(duration) is expected


def test_preservation_weights():
    weights = {kind.label: kind.preservation_weight for kind in SilenceType}

    assert weights == {"inter_word": 0.9, "pause": 0.7, "breath": 0.8, "long_pause": 0.6}


def test_classify_intervals_handles_empty_and_degenerate_input():
    assert classify_intervals([]) == []
    assert classify_intervals([(1.0, 1.0)]) == []


def test_parse_silencedetect_report():
    pairs = parse_silencedetect_report(REPORT)

    assert pairs == [(0.5, 0.58), (1.2, 2.7)]


def test_detect_silences_runs_ffmpeg_with_timeout(tmp_path):
    calls = []

    def runner(command, timeout=None):
        calls.append((command, timeout))
        return SimpleNamespace(stderr=REPORT, stdout="")

    intervals = detect_silences(tmp_path / "voice.wav", SilenceConfig(), runner=runner)

    command, timeout = calls[0]
    assert "silencedetect=noise=-40dB:duration=0.05" in command
    assert timeout == 120.0
    assert [interval.type for interval in intervals] == [SilenceType.INTER_WORD, SilenceType.LONG_PAUSE]


def test_merge_overlapping_and_near_intervals():
    intervals = classify_intervals([(0.0, 0.2), (0.25, 0.5), (1.0, 1.4), (1.2, 1.6), (3.0, 3.05)])

    merged = merge_intervals(intervals, tolerance=0.1)

    assert [(i.start_time, i.end_time) for i in merged] == [(0.0, 0.5), (1.0, 1.6), (3.0, 3.05)]
    assert merged[0].type is SilenceType.BREATH


def test_analyze_survives_failing_ffmpeg(tmp_path):
    tone = Sine(440).to_audio_segment(duration=500, volume=-6.0)
    audio = tone + AudioSegment.silent(duration=1200, frame_rate=tone.frame_rate) + tone
    path = tmp_path / "voice.wav"
    audio.export(path, format="wav")

    def broken_runner(command, timeout=None):
        raise CommandError(command, returncode=1)

    intervals = analyze_silences(path, SilenceConfig(), runner=broken_runner)

    assert len(intervals) == 1
    assert intervals[0].start_time == pytest.approx(0.5, abs=0.02)
    assert intervals[0].end_time == pytest.approx(1.7, abs=0.02)
    assert intervals[0].type is SilenceType.LONG_PAUSE


def test_summarize_counts_by_type():
    intervals = [
        SilenceInterval(0.0, 0.05, 0.05, SilenceType.INTER_WORD),
        SilenceInterval(1.0, 2.5, 1.5, SilenceType.LONG_PAUSE),
        SilenceInterval(3.0, 4.0, 1.0, SilenceType.LONG_PAUSE),
    ]

    summary = summarize(intervals)

    assert summary["long_pause"] == {"count": 2, "total": 2.5}
    assert summary["pause"]["count"] == 0
