from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

from .errors import ParseError
from .transcript import parse_cues, write_cues
from .types import Segment, TranslatedSegment

logger = logging.getLogger(__name__)


class TranslationCheckpoint:
    """Resumable snapshot of translation progress, stored in cue format."""

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def for_output(cls, output_path: Path) -> "TranslationCheckpoint":
        return cls(output_path.with_name(output_path.name + ".checkpoint"))

    def exists(self) -> bool:
        return self.path.exists()

    def load(self, segments: Sequence[Segment]) -> List[TranslatedSegment]:
        """Return the checkpointed prefix of ``segments`` or ``[]`` if it does not match."""

        if not self.path.exists():
            return []
        try:
            cached = parse_cues(self.path.read_text(encoding="utf-8"))
        except ParseError as exc:
            logger.warning("Discarding unreadable checkpoint %s: %s", self.path, exc)
            return []

        if len(cached) > len(segments):
            logger.warning("Discarding checkpoint %s: %s cues for %s segments", self.path, len(cached), len(segments))
            return []
        for cue, segment in zip(cached, segments):
            if (cue.start_ms, cue.end_ms) != (segment.start_ms, segment.end_ms):
                logger.warning("Discarding checkpoint %s: timestamps do not match input at %s ms", self.path, segment.start_ms)
                return []

        logger.info("Loaded %s translated segments from checkpoint %s", len(cached), self.path)
        return [TranslatedSegment.from_segment(segment, cue.text) for cue, segment in zip(cached, segments)]

    def save(self, translated: Sequence[TranslatedSegment]) -> None:
        write_cues(translated, self.path)
        logger.debug("Checkpoint saved with %s segments", len(translated))

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug("Removed checkpoint %s", self.path)
