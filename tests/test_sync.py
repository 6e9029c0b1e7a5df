from __future__ import annotations

from pathlib import Path

import pytest
from pydub import AudioSegment

from dubbing_agent.sync import SyncValidator
from dubbing_agent.types import Segment

SEGMENTS = [Segment(0, 4000, "One"), Segment(4500, 10_000, "Two")]


@pytest.mark.parametrize("actual, passed", [(10.0, True), (10.2, True), (9.6, True), (10.6, False), (9.0, False)])
def test_tolerance_is_relative(actual, passed):
    report = SyncValidator(measure=lambda path: actual).validate(SEGMENTS, Path("dub.wav"))

    assert report.expected_duration == 10.0
    assert report.actual_duration == actual
    assert report.diff == pytest.approx(abs(actual - 10.0))
    assert report.passed is passed


def test_unreadable_audio_reports_failure_without_raising(tmp_path):
    report = SyncValidator().validate(SEGMENTS, tmp_path / "missing.wav")

    assert report.passed is False
    assert report.actual_duration == 0.0


def test_measures_real_audio(tmp_path):
    path = tmp_path / "dub.wav"
    AudioSegment.silent(duration=10_100, frame_rate=16000).export(path, format="wav")

    report = SyncValidator().validate(SEGMENTS, path)

    assert report.passed
    assert report.actual_duration == pytest.approx(10.1)
