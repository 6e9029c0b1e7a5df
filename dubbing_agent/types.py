from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import List, Optional

FAILURE_TAG = "[ERROR]"


@dataclass(frozen=True)
class Segment:
    """Single transcript cue with millisecond timing."""

    start_ms: int
    end_ms: int
    text: str

    def __post_init__(self) -> None:
        if self.start_ms < 0:
            raise ValueError(f"start_ms must be >= 0, got {self.start_ms}")
        if self.end_ms <= self.start_ms:
            raise ValueError(f"end_ms must be > start_ms, got {self.start_ms}-{self.end_ms}")

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


@dataclass(frozen=True)
class TranslatedSegment:
    """Translated cue. Timestamps are always copied from the originating Segment."""

    start_ms: int
    end_ms: int
    source_text: str
    translated_text: str

    def __post_init__(self) -> None:
        if self.start_ms < 0 or self.end_ms <= self.start_ms:
            raise ValueError(f"invalid cue timing {self.start_ms}-{self.end_ms}")

    @classmethod
    def from_segment(cls, segment: Segment, translated_text: str) -> "TranslatedSegment":
        return cls(
            start_ms=segment.start_ms,
            end_ms=segment.end_ms,
            source_text=segment.text,
            translated_text=translated_text,
        )

    @classmethod
    def fallback(cls, segment: Segment, tag: str = FAILURE_TAG) -> "TranslatedSegment":
        return cls.from_segment(segment, f"{tag} {segment.text}")

    def with_text(self, translated_text: str) -> "TranslatedSegment":
        return replace(self, translated_text=translated_text)

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    @property
    def is_fallback(self) -> bool:
        return self.translated_text.startswith(FAILURE_TAG)


@dataclass(frozen=True)
class TranslationBatch:
    """Ordered slice of segments sent to the completion service in one call."""

    offset: int
    segments: List[Segment] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def char_count(self) -> int:
        return sum(len(segment.text) for segment in self.segments)

    @property
    def label(self) -> str:
        return f"{self.offset + 1}-{self.offset + len(self.segments)}"


class SilenceType(Enum):
    """Silence categories by duration in seconds, with preservation weights."""

    INTER_WORD = ("inter_word", 0.0, 0.1, 0.9)
    PAUSE = ("pause", 0.1, 0.3, 0.7)
    BREATH = ("breath", 0.3, 1.0, 0.8)
    LONG_PAUSE = ("long_pause", 1.0, float("inf"), 0.6)

    def __init__(self, label: str, min_duration: float, max_duration: float, weight: float) -> None:
        self.label = label
        self.min_duration = min_duration
        self.max_duration = max_duration
        self.preservation_weight = weight

    @classmethod
    def classify(cls, duration: float) -> "SilenceType":
        for kind in cls:
            if kind.min_duration <= duration < kind.max_duration:
                return kind
        return cls.LONG_PAUSE


@dataclass(frozen=True)
class SilenceInterval:
    """Low-amplitude interval of an audio file, in seconds."""

    start_time: float
    end_time: float
    duration: float
    type: SilenceType

    @property
    def preservation_weight(self) -> float:
        return self.type.preservation_weight

    def overlaps(self, start: float, end: float) -> bool:
        return not (self.end_time <= start or self.start_time >= end)


@dataclass(frozen=True)
class SyncReport:
    """Advisory comparison of expected vs measured audio duration (seconds)."""

    expected_duration: float
    actual_duration: float
    diff: float
    passed: bool


@dataclass(frozen=True)
class AlignmentResult:
    """Outcome of audio alignment."""

    output_path: Optional[Path]
    strategy: str
    speed_factor: float = 1.0


@dataclass
class PipelineArtifacts:
    """Paths to the generated artifacts for a dubbing run."""

    transcript_path: Path
    subtitles_path: Optional[Path] = None
    transcript_json: Optional[Path] = None
    aligned_audio_path: Optional[Path] = None
    sync_report: Optional[SyncReport] = None
