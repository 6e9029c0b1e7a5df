from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Iterable

import srt

from .types import TranslatedSegment


def write_bilingual_srt(
    segments: Iterable[TranslatedSegment],
    output_path: Path,
    translation_first: bool = True,
) -> Path:
    subtitles = []
    for idx, segment in enumerate(segments, start=1):
        if not segment.translated_text:
            raise ValueError("All segments must be translated before creating subtitles.")
        if translation_first:
            content_lines = [segment.translated_text, segment.source_text]
        else:
            content_lines = [segment.source_text, segment.translated_text]
        subtitle = srt.Subtitle(
            index=idx,
            start=dt.timedelta(milliseconds=segment.start_ms),
            end=dt.timedelta(milliseconds=segment.end_ms),
            content="\n".join(content_lines),
        )
        subtitles.append(subtitle)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(srt.compose(subtitles), encoding="utf-8")
    return output_path
