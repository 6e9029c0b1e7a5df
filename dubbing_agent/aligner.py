from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List, Optional, Sequence, Union

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from .config import AlignmentConfig
from .errors import ServiceError
from .media import CommandRunner, build_atempo_chain, get_audio_duration, run_command
from .types import AlignmentResult, Segment, SilenceInterval, TranslatedSegment

logger = logging.getLogger(__name__)

Timed = Union[Segment, TranslatedSegment]

_AUDIO_ERRORS = (ValueError, OSError, CouldntDecodeError, ServiceError)


class AudioAligner:
    """Make synthesized audio last exactly as long as the transcript.

    Strategies are tried in order: gap correction over per-segment clips,
    tempo scaling of a candidate track, then pass-through of the original.
    """

    def __init__(self, config: Optional[AlignmentConfig] = None, runner: CommandRunner = run_command):
        self.config = config or AlignmentConfig()
        self.runner = runner

    def align(
        self,
        segments: Sequence[Timed],
        output_path: Path,
        audio_path: Optional[Path] = None,
        segment_clips: Optional[Sequence[Optional[Path]]] = None,
        silences: Optional[Sequence[SilenceInterval]] = None,
    ) -> AlignmentResult:
        if not segments:
            raise ValueError("No segments provided for alignment.")
        target_ms = max(segment.end_ms for segment in segments)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if segment_clips:
            try:
                self.gap_correct(segments, segment_clips, output_path, target_ms)
                return AlignmentResult(output_path=output_path, strategy="gap")
            except _AUDIO_ERRORS as exc:
                logger.warning("Gap correction unavailable: %s", exc)

        if audio_path is None:
            logger.error("No audio available to align; skipping audio output")
            return AlignmentResult(output_path=None, strategy="passthrough")

        try:
            return self.tempo_scale(audio_path, output_path, target_ms, silences or [])
        except _AUDIO_ERRORS as exc:
            logger.warning("Tempo scaling failed, copying original audio: %s", exc)
        return self.passthrough(audio_path, output_path)

    def gap_correct(
        self,
        segments: Sequence[Timed],
        segment_clips: Sequence[Optional[Path]],
        output_path: Path,
        target_ms: int,
    ) -> Path:
        """Place each clip at its segment start on a silent timeline; speech is never stretched."""

        timeline = self._conform(AudioSegment.silent(duration=target_ms, frame_rate=self.config.sample_rate))
        placed = 0
        for segment, clip_path in zip(segments, segment_clips):
            if clip_path is None or not clip_path.exists():
                logger.warning("Skipping segment without audio clip at %s ms", segment.start_ms)
                continue
            clip = self._conform(AudioSegment.from_file(clip_path))
            if len(clip) > segment.duration_ms:
                logger.warning(
                    "Clip %s overruns its window by %s ms", clip_path.name, len(clip) - segment.duration_ms
                )
            if segment.start_ms + len(clip) > target_ms:
                logger.warning("Clip %s is cut at the end of the timeline", clip_path.name)
            timeline = timeline.overlay(clip, position=segment.start_ms)
            placed += 1

        if placed == 0:
            raise ValueError("No segment clips available for gap correction.")
        timeline.export(output_path, format="wav")
        logger.info("Gap-corrected %s/%s clips into %s", placed, len(segments), output_path)
        return output_path

    def tempo_scale(
        self,
        audio_path: Path,
        output_path: Path,
        target_ms: int,
        silences: Sequence[SilenceInterval] = (),
    ) -> AlignmentResult:
        current_ms = get_audio_duration(audio_path) * 1000.0
        if current_ms <= 0:
            raise ValueError(f"Audio has no duration: {audio_path}")

        source = audio_path
        if current_ms > target_ms and silences:
            audio = AudioSegment.from_file(audio_path)
            compressed = compress_long_pauses(audio, silences, current_ms - target_ms, self.config)
            if len(compressed) < len(audio):
                source = output_path.with_name(output_path.stem + ".compressed.wav")
                compressed.export(source, format="wav")
                logger.info("Shortened long pauses by %s ms", len(audio) - len(compressed))
                current_ms = float(len(compressed))

        raw_factor = current_ms / target_ms
        if abs(raw_factor - 1.0) < 0.01:
            self._conform(AudioSegment.from_file(source)).export(output_path, format="wav")
            self._discard(source, audio_path)
            return AlignmentResult(output_path=output_path, strategy="unchanged")

        factor = min(max(raw_factor, self.config.min_speed), self.config.max_speed)
        if factor != raw_factor:
            logger.warning(
                "Speed factor %.3f clamped to %.3f; output will miss target by %.0f ms",
                raw_factor,
                factor,
                abs(current_ms / factor - target_ms),
            )

        command = [
            self.config.ffmpeg_bin,
            "-y",
            "-i",
            str(source),
            "-filter:a",
            build_atempo_chain(factor),
            "-ar",
            str(self.config.sample_rate),
            "-ac",
            str(self.config.channels),
            "-c:a",
            self.config.codec,
            str(output_path),
        ]
        try:
            self.runner(command, timeout=self.config.timeout)
        finally:
            self._discard(source, audio_path)
        logger.info("Tempo-scaled %s by %.3f into %s", audio_path, factor, output_path)
        return AlignmentResult(output_path=output_path, strategy="tempo", speed_factor=factor)

    def passthrough(self, audio_path: Path, output_path: Path) -> AlignmentResult:
        try:
            shutil.copyfile(audio_path, output_path)
        except OSError as exc:
            logger.error("Could not copy original audio %s: %s", audio_path, exc)
            return AlignmentResult(output_path=None, strategy="passthrough")
        logger.info("Copied original audio to %s", output_path)
        return AlignmentResult(output_path=output_path, strategy="passthrough")

    def _conform(self, audio: AudioSegment) -> AudioSegment:
        return (
            audio.set_frame_rate(self.config.sample_rate)
            .set_channels(self.config.channels)
            .set_sample_width(self.config.sample_width)
        )

    @staticmethod
    def _discard(source: Path, original: Path) -> None:
        if source != original and source.exists():
            source.unlink()


def compress_long_pauses(
    audio: AudioSegment,
    silences: Sequence[SilenceInterval],
    excess_ms: float,
    config: AlignmentConfig,
) -> AudioSegment:
    """Trim low-weight pauses down to ``min_long_pause_ms``, removing at most ``excess_ms``."""

    keep = config.min_long_pause_ms
    pieces: List[AudioSegment] = []
    cursor = 0
    remaining = int(excess_ms)
    for silence in sorted(silences, key=lambda interval: interval.start_time):
        if remaining <= 0:
            break
        if silence.preservation_weight >= config.compressible_weight:
            continue
        start_ms = int(silence.start_time * 1000)
        end_ms = min(int(silence.end_time * 1000), len(audio))
        removable = min(end_ms - start_ms - keep, remaining)
        if start_ms < cursor or removable <= 0:
            continue
        cut_start = start_ms + keep // 2
        pieces.append(audio[cursor:cut_start])
        cursor = cut_start + removable
        remaining -= removable
    if not pieces:
        return audio
    pieces.append(audio[cursor:])
    result = pieces[0]
    for piece in pieces[1:]:
        result += piece
    return result
