"""Silence detection and classification for dub alignment.

Silences are found by two independent detectors (ffmpeg ``silencedetect`` and
:mod:`pydub.silence`), merged, and classified by duration. The preservation
weight of a silence type tells the aligner how reluctant it should be to
shorten that silence.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError
from pydub.silence import detect_silence

from .config import SilenceConfig
from .errors import ServiceError
from .media import CommandRunner, run_command
from .types import SilenceInterval, SilenceType

logger = logging.getLogger(__name__)

_SILENCE_START = re.compile(r"silence_start: (-?[0-9.]+)")
_SILENCE_END = re.compile(r"silence_end: ([0-9.]+) \| silence_duration: ([0-9.]+)")


def classify_intervals(intervals: Iterable[Tuple[float, float]]) -> List[SilenceInterval]:
    """Turn ``(start, end)`` pairs in seconds into classified intervals."""

    classified = []
    for start, end in intervals:
        duration = end - start
        if duration <= 0:
            continue
        classified.append(
            SilenceInterval(start_time=start, end_time=end, duration=duration, type=SilenceType.classify(duration))
        )
    return classified


def parse_silencedetect_report(report: str) -> List[Tuple[float, float]]:
    """Extract ``(start, end)`` pairs from ffmpeg ``silencedetect`` stderr."""

    pairs: List[Tuple[float, float]] = []
    pending_start = None
    for line in report.splitlines():
        start_match = _SILENCE_START.search(line)
        if start_match:
            pending_start = max(0.0, float(start_match.group(1)))
            continue
        end_match = _SILENCE_END.search(line)
        if end_match:
            end = float(end_match.group(1))
            start = pending_start if pending_start is not None else max(0.0, end - float(end_match.group(2)))
            pairs.append((start, end))
            pending_start = None
    if pending_start is not None:
        logger.debug("Ignoring silence starting at %.3fs that runs to the end of the file", pending_start)
    return pairs


def detect_silences(
    audio_path: Path,
    config: SilenceConfig,
    runner: CommandRunner = run_command,
) -> List[SilenceInterval]:
    """Run ffmpeg ``silencedetect`` over ``audio_path``."""

    command = [
        config.ffmpeg_bin,
        "-hide_banner",
        "-nostats",
        "-i",
        str(audio_path),
        "-af",
        f"silencedetect=noise={config.threshold_db:g}dB:duration={config.min_duration:g}",
        "-f",
        "null",
        "-",
    ]
    completed = runner(command, timeout=config.timeout)
    return classify_intervals(parse_silencedetect_report(completed.stderr or ""))


def detect_silences_pydub(audio_path: Path, config: SilenceConfig) -> List[SilenceInterval]:
    """Detect silences on decoded samples with :func:`pydub.silence.detect_silence`."""

    audio = AudioSegment.from_file(audio_path)
    ranges = detect_silence(
        audio,
        min_silence_len=max(1, int(config.min_duration * 1000)),
        silence_thresh=config.threshold_db,
    )
    return classify_intervals((start / 1000.0, end / 1000.0) for start, end in ranges)


def merge_intervals(intervals: Iterable[SilenceInterval], tolerance: float = 0.1) -> List[SilenceInterval]:
    """Merge overlapping intervals and those closer than ``tolerance`` seconds."""

    ordered = sorted(intervals, key=lambda interval: interval.start_time)
    merged: List[Tuple[float, float]] = []
    for interval in ordered:
        if merged and interval.start_time <= merged[-1][1] + tolerance:
            start, end = merged[-1]
            merged[-1] = (start, max(end, interval.end_time))
        else:
            merged.append((interval.start_time, interval.end_time))
    return classify_intervals(merged)


def analyze_silences(
    audio_path: Path,
    config: SilenceConfig,
    runner: CommandRunner = run_command,
) -> List[SilenceInterval]:
    """Run both detectors concurrently and merge what they find.

    A detector that fails is logged and ignored; if both fail the result is
    empty and alignment proceeds without silence information.
    """

    with ThreadPoolExecutor(max_workers=2) as executor:
        futures = {
            "ffmpeg": executor.submit(detect_silences, audio_path, config, runner),
            "pydub": executor.submit(detect_silences_pydub, audio_path, config),
        }
        found: List[SilenceInterval] = []
        for name, future in futures.items():
            try:
                intervals = future.result()
            except (ServiceError, CouldntDecodeError, OSError) as exc:
                logger.warning("Silence detector %s failed for %s: %s", name, audio_path, exc)
                continue
            logger.debug("Silence detector %s found %s intervals", name, len(intervals))
            found.extend(intervals)

    merged = merge_intervals(found, config.merge_tolerance)
    logger.info("Detected %s silences in %s", len(merged), audio_path)
    return merged


def summarize(intervals: Sequence[SilenceInterval]) -> Dict[str, Dict[str, float]]:
    """Per-type count and total duration (seconds) of ``intervals``."""

    summary: Dict[str, Dict[str, float]] = {kind.label: {"count": 0, "total": 0.0} for kind in SilenceType}
    for interval in intervals:
        entry = summary[interval.type.label]
        entry["count"] += 1
        entry["total"] += interval.duration
    for label, entry in summary.items():
        if entry["count"]:
            logger.info("Silence %s: %d intervals, %.2fs total", label, entry["count"], entry["total"])
    return summary
