from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Sequence, Union

from pydub.exceptions import CouldntDecodeError

from .errors import ServiceError, SyncFailure
from .media import get_audio_duration
from .types import Segment, SyncReport, TranslatedSegment

logger = logging.getLogger(__name__)


class SyncValidator:
    """Compare final audio length with the transcript; advisory only."""

    def __init__(self, tolerance: float = 0.05, measure: Callable[[Path], float] = get_audio_duration):
        self.tolerance = tolerance
        self.measure = measure

    def validate(self, segments: Sequence[Union[Segment, TranslatedSegment]], audio_path: Path) -> SyncReport:
        expected = max((segment.end_ms for segment in segments), default=0) / 1000.0
        try:
            actual = self.measure(audio_path)
        except (OSError, CouldntDecodeError, ServiceError) as exc:
            logger.warning("Could not measure %s: %s", audio_path, exc)
            return SyncReport(expected_duration=expected, actual_duration=0.0, diff=expected, passed=False)

        diff = abs(actual - expected)
        passed = expected > 0 and diff / expected < self.tolerance
        report = SyncReport(expected_duration=expected, actual_duration=actual, diff=diff, passed=passed)
        if passed:
            logger.info("Audio in sync: expected %.3fs, got %.3fs", expected, actual)
        else:
            logger.warning("%s", SyncFailure(f"audio drift {diff:.3f}s (expected {expected:.3f}s, got {actual:.3f}s)"))
        return report
