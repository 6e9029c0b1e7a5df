from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from .aligner import AudioAligner
from .checkpoint import TranslationCheckpoint
from .config import PipelineConfig
from .fidelity import FidelityValidator
from .fitting import TimingFitter
from .media import CommandRunner, run_command
from .orchestrator import TranslationOrchestrator
from .silence import analyze_silences, summarize
from .subtitles import write_bilingual_srt
from .sync import SyncValidator
from .transcript import load_transcript, write_cues
from .translation import CompletionBackend, build_backend
from .types import PipelineArtifacts, Segment, TranslatedSegment

logger = logging.getLogger(__name__)


class DubbingPipeline:
    """Drive parsing, translation, timing fit and audio alignment for one transcript."""

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        backend: Optional[CompletionBackend] = None,
        runner: CommandRunner = run_command,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or PipelineConfig()
        self.backend = backend or build_backend(self.config.translation)
        self.runner = runner
        self.validator = FidelityValidator(self.config.fidelity, self.backend, self.config.translation)
        self.fitter = TimingFitter(self.config.fitting, self.backend, self.validator, self.config.translation)
        self.aligner = AudioAligner(self.config.alignment, runner=runner)
        self.sync_validator = SyncValidator(tolerance=self.config.alignment.sync_tolerance)
        self.sleep = sleep

    def run(
        self,
        transcript_path: Path,
        run_name: Optional[str] = None,
        audio_path: Optional[Path] = None,
        clips_dir: Optional[Path] = None,
    ) -> PipelineArtifacts:
        transcript_path = transcript_path.resolve()
        if not transcript_path.exists():
            raise FileNotFoundError(transcript_path)

        run_name = run_name or self._default_run_name(transcript_path)
        run_dir = self.config.output_root.resolve() / run_name
        output_path = run_dir / "subtitles" / f"{run_name}.vtt"
        checkpoint = TranslationCheckpoint.for_output(output_path)

        resuming = self.config.resume and checkpoint.exists()
        if run_dir.exists() and not (self.config.overwrite or resuming):
            raise FileExistsError(f"{run_dir} already exists and overwrite=False")
        if checkpoint.exists() and not self.config.resume:
            checkpoint.clear()

        logger.info("Starting dubbing run '%s' for %s", run_name, transcript_path)
        run_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Step 1/5: Parsing transcript...")
        segments = load_transcript(transcript_path)

        logger.info("Step 2/5: Translating %s segments...", len(segments))
        orchestrator = TranslationOrchestrator(
            self.config.translation, self.backend, self.validator, checkpoint=checkpoint, sleep=self.sleep
        )
        translated = orchestrator.translate(segments)

        logger.info("Step 3/5: Re-validating translations...")
        translated = self.validator.revalidate(translated)

        if self.config.fit_timing:
            logger.info("Step 4/5: Fitting translations to cue timing...")
            translated = self.fitter.fit(translated)
        else:
            logger.info("Step 4/5: Timing fit disabled")
        self._check_timestamps(segments, translated)

        write_cues(translated, output_path)
        subtitles_path = None
        if self.config.export_srt:
            subtitles_path = write_bilingual_srt(translated, run_dir / "subtitles" / f"{run_name}_bilingual.srt")
        transcript_json = self._write_transcript_json(translated, run_dir / "transcript" / f"{run_name}.json")
        checkpoint.clear()

        artifacts = PipelineArtifacts(
            transcript_path=output_path,
            subtitles_path=subtitles_path,
            transcript_json=transcript_json,
        )

        if audio_path is not None or clips_dir is not None:
            logger.info("Step 5/5: Aligning dubbed audio...")
            self._align_audio(translated, run_dir / "audio" / f"{run_name}_dub.wav", audio_path, clips_dir, artifacts)
        else:
            logger.info("Step 5/5: No audio supplied; skipping alignment")

        logger.info("Dubbing run completed. Artifacts: %s", artifacts)
        return artifacts

    def _align_audio(
        self,
        segments: List[TranslatedSegment],
        output_path: Path,
        audio_path: Optional[Path],
        clips_dir: Optional[Path],
        artifacts: PipelineArtifacts,
    ) -> None:
        clips = self._collect_clips(clips_dir, len(segments)) if clips_dir else None
        silences = None
        if audio_path is not None:
            silences = analyze_silences(audio_path, self.config.silence, runner=self.runner)
            summarize(silences)

        result = self.aligner.align(
            segments, output_path, audio_path=audio_path, segment_clips=clips, silences=silences
        )
        logger.info("Audio aligned with strategy '%s' (speed %.3f)", result.strategy, result.speed_factor)
        if result.output_path is not None:
            artifacts.aligned_audio_path = result.output_path
            artifacts.sync_report = self.sync_validator.validate(segments, result.output_path)

    def _collect_clips(self, clips_dir: Path, count: int) -> List[Optional[Path]]:
        clips: List[Optional[Path]] = []
        for idx in range(1, count + 1):
            matches = sorted(clips_dir.glob(f"segment_{idx:04d}.*"))
            clips.append(matches[0] if matches else None)
        found = sum(1 for clip in clips if clip is not None)
        logger.info("Found %s/%s segment clips in %s", found, count, clips_dir)
        return clips

    def _check_timestamps(self, segments: List[Segment], translated: List[TranslatedSegment]) -> None:
        if len(segments) != len(translated):
            raise RuntimeError(f"Segment count changed during translation: {len(segments)} -> {len(translated)}")
        for segment, result in zip(segments, translated):
            if (segment.start_ms, segment.end_ms) != (result.start_ms, result.end_ms):
                raise RuntimeError(f"Timestamps changed for segment at {segment.start_ms} ms")

    def _write_transcript_json(self, segments: List[TranslatedSegment], output_path: Path) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        payload = [
            {
                "start_ms": segment.start_ms,
                "end_ms": segment.end_ms,
                "source_text": segment.source_text,
                "translated_text": segment.translated_text,
                "fallback": segment.is_fallback,
            }
            for segment in segments
        ]
        output_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        return output_path

    def _default_run_name(self, transcript_path: Path) -> str:
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        return f"{transcript_path.stem}_{timestamp}"
