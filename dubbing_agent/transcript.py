"""Transcript parsing, repair and cue-file serialization.

Two input encodings are understood: WhisperX-style TSV rows
(``start_ms<TAB>end_ms<TAB>text``) and WEBVTT-like cue files. Cue timing lines
are matched against an ordered table of ``(pattern, extractor)`` rows; the
first row that matches wins, so supporting another dialect means appending a
row to :data:`TIMESTAMP_DIALECTS`.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import ParseError
from .types import Segment, TranslatedSegment

logger = logging.getLogger(__name__)

WEBVTT_HEADER = "WEBVTT"

Extractor = Callable[[re.Match[str]], Tuple[int, int]]
Cue = Union[Segment, TranslatedSegment]

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_DIGITS_ONLY = re.compile(r"^\d+$")


def _to_ms(hours: str, minutes: str, seconds: str, fraction: str) -> int:
    # The fraction is decimal: "5" is 500 ms, "05" is 50 ms.
    millis = int((fraction or "0").ljust(3, "0")[:3])
    return int(hours) * 3_600_000 + int(minutes) * 60_000 + int(seconds) * 1000 + millis


def _hms_range(match: re.Match[str]) -> Tuple[int, int]:
    g = match.groups()
    return _to_ms(g[0], g[1], g[2], g[3]), _to_ms(g[4], g[5], g[6], g[7])


def _ms_range(match: re.Match[str]) -> Tuple[int, int]:
    g = match.groups()
    return _to_ms("0", g[0], g[1], g[2]), _to_ms("0", g[3], g[4], g[5])


TIMESTAMP_DIALECTS: List[Tuple[str, re.Pattern[str], Extractor]] = [
    (
        "HH:MM:SS.mmm",
        re.compile(
            r"(?<![\d:])(\d{1,2}):(\d{2}):(\d{2})[.,](\d{3})\s*-->\s*"
            r"(\d{1,2}):(\d{2}):(\d{2})[.,](\d{3})(?!\d)"
        ),
        _hms_range,
    ),
    (
        "MM:SS.mmm",
        re.compile(r"(?<![\d:])(\d{1,2}):(\d{2})[.,](\d{3})\s*-->\s*(\d{1,2}):(\d{2})[.,](\d{3})(?!\d)"),
        _ms_range,
    ),
    (
        "HH:MM:SS.m (flexible)",
        re.compile(
            r"(?<![\d:])(\d{1,2}):(\d{2}):(\d{2})[.,:](\d{1,3})\s*[-=]*>\s*"
            r"(\d{1,2}):(\d{2}):(\d{2})[.,:](\d{1,3})(?!\d)"
        ),
        _hms_range,
    ),
    (
        "MM:SS.m (flexible)",
        re.compile(r"(?<![\d:])(\d{1,2}):(\d{2})[.,](\d{1,3})\s*[-=]*>\s*(\d{1,2}):(\d{2})[.,](\d{1,3})(?!\d)"),
        _ms_range,
    ),
]


def match_timing(line: str) -> Optional[Tuple[int, int]]:
    """Return ``(start_ms, end_ms)`` for the first dialect matching ``line``."""

    if ">" not in line:
        return None
    for name, pattern, extractor in TIMESTAMP_DIALECTS:
        match = pattern.search(line)
        if match:
            logger.debug("Timing line matched dialect %s: %s", name, line)
            return extractor(match)
    return None


def _build_segment(start_ms: int, end_ms: int, text: str, where: str) -> Segment:
    try:
        return Segment(start_ms=start_ms, end_ms=end_ms, text=text)
    except ValueError as exc:
        raise ParseError(f"Invalid cue at {where}: {exc}") from exc


def _parse_cue_blocks(text: str) -> List[Segment]:
    segments: List[Segment] = []
    timing: Optional[Tuple[int, int]] = None
    timing_line = 0
    lines: List[str] = []
    in_note = False

    def flush() -> None:
        nonlocal timing, lines
        if timing is not None:
            body = " ".join(" ".join(lines).split())
            if body:
                segments.append(_build_segment(timing[0], timing[1], body, f"line {timing_line}"))
            else:
                logger.debug("Skipping empty cue at line %s", timing_line)
        timing = None
        lines = []

    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            flush()
            in_note = False
            continue
        if timing is None and (line.startswith(WEBVTT_HEADER) or line.startswith("NOTE")):
            in_note = line.startswith("NOTE")
            continue
        if in_note:
            continue
        if "-->" in line or (timing is None and ">" in line):
            parsed = match_timing(line)
            if parsed is not None:
                flush()
                timing = parsed
                timing_line = number
                continue
            if timing is None:
                logger.debug("Unrecognised timing line %s: %s", number, line)
                continue
        if timing is None:
            # Cue identifiers and stray text outside a cue.
            if not _DIGITS_ONLY.match(line):
                logger.debug("Ignoring text outside a cue at line %s: %s", number, line)
            continue
        lines.append(line)
    flush()
    return segments


def repair_cue_text(text: str) -> str:
    """Normalize a damaged cue file so the strict dialects can read it."""

    repaired: List[str] = []
    for raw in text.splitlines():
        line = _CONTROL_CHARS.sub("", raw)
        if ">" in line and re.search(r"\d:\d", line):
            line = re.sub(r"\s*[-=]*>\s*", " --> ", line, count=1)
            line = re.sub(r"(\d),(\d)", r"\1.\2", line)
            line = re.sub(r"(\d{1,2}:\d{1,2}:\d{1,2}):(\d{1,3})(?![\d:])", r"\1.\2", line)
            line = re.sub(r"(?<![\d:.])(\d{1,2}:\d{1,2}:\d{1,2})(?![\d:.])", r"\1.000", line)
            line = re.sub(r"(?<![\d:.])(\d{1,2}(?::\d{1,2}){1,2})\.(\d{1,3})(?!\d)", _pad_timestamp, line)
        repaired.append(line)

    first = next((line.strip() for line in repaired if line.strip()), "")
    if not first.startswith(WEBVTT_HEADER):
        repaired = [WEBVTT_HEADER, ""] + repaired
    return "\n".join(repaired) + "\n"


def _pad_timestamp(match: re.Match[str]) -> str:
    clock = ":".join(part.zfill(2) for part in match.group(1).split(":"))
    return f"{clock}.{match.group(2).ljust(3, '0')}"


def parse_cues(text: str) -> List[Segment]:
    """Parse cue-file text, running the repair pass once if nothing parses."""

    segments = _parse_cue_blocks(text)
    if segments:
        return segments
    logger.warning("No cues parsed; attempting cue repair pass")
    segments = _parse_cue_blocks(repair_cue_text(text))
    if not segments:
        raise ParseError("Transcript contains no parsable cues, even after repair")
    logger.info("Cue repair recovered %s segments", len(segments))
    return segments


def parse_tsv(text: str) -> List[Segment]:
    """Parse ``start_ms<TAB>end_ms<TAB>text`` rows; the header row is skipped."""

    segments: List[Segment] = []
    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        parts = line.split("\t", 2)
        if len(parts) < 3:
            logger.warning("Ignoring malformed TSV row %s: %s", number, line)
            continue
        try:
            start_ms = int(parts[0].strip())
            end_ms = int(parts[1].strip())
        except ValueError:
            if segments or number > 1:
                logger.warning("Ignoring TSV row %s with invalid timing: %s", number, line)
            continue
        body = " ".join(parts[2].split())
        if not body:
            continue
        segments.append(_build_segment(start_ms, end_ms, body, f"row {number}"))
    if not segments:
        raise ParseError("TSV transcript contains no segments")
    return segments


def parse_transcript(text: str, fmt: Optional[str] = None) -> List[Segment]:
    """Parse transcript text; ``fmt`` is ``"tsv"``, ``"vtt"`` or ``None`` to sniff."""

    text = text.lstrip("\ufeff")
    if fmt is None:
        fmt = "vtt" if "-->" in text or text.lstrip().startswith(WEBVTT_HEADER) else "tsv"
    if fmt == "tsv":
        segments = parse_tsv(text)
    elif fmt in {"vtt", "cue", "srt"}:
        segments = parse_cues(text)
    else:
        raise ValueError(f"Unsupported transcript format: {fmt}")
    logger.debug("Parsed %s segments from %s transcript", len(segments), fmt)
    return segments


def load_transcript(path: Path) -> List[Segment]:
    """Read and parse a transcript file; TSV is chosen by the ``.tsv`` suffix."""

    if not path.exists():
        raise ParseError(f"Transcript not found: {path}")
    text = path.read_text(encoding="utf-8-sig")
    fmt = "tsv" if path.suffix.lower() == ".tsv" else None
    segments = parse_transcript(text, fmt=fmt)
    logger.info("Loaded %s segments from %s", len(segments), path)
    return segments


def format_timestamp(ms: int) -> str:
    hours, remainder = divmod(int(ms), 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    seconds, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def _cue_text(cue: Cue) -> str:
    text = cue.translated_text if isinstance(cue, TranslatedSegment) else cue.text
    return " ".join(text.split())


def render_cues(cues: Iterable[Cue]) -> str:
    """Serialize cues as a WEBVTT document with numbered entries."""

    blocks = [f"{WEBVTT_HEADER}\n"]
    for idx, cue in enumerate(cues, start=1):
        blocks.append(
            f"{idx}\n{format_timestamp(cue.start_ms)} --> {format_timestamp(cue.end_ms)}\n{_cue_text(cue)}\n"
        )
    return "\n".join(blocks)


def write_cues(cues: Sequence[Cue], output_path: Path) -> Path:
    """Write cues atomically: a reader never sees a half-written file."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.with_name(output_path.name + ".tmp")
    temp_path.write_text(render_cues(cues), encoding="utf-8")
    os.replace(temp_path, output_path)
    return output_path
