from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence

from .checkpoint import TranslationCheckpoint
from .config import TranslationConfig
from .fidelity import FidelityValidator
from .recovery import RecoveryLadder
from .translation import CompletionBackend, build_batch_prompt, parse_batch_response
from .types import Segment, TranslatedSegment, TranslationBatch

logger = logging.getLogger(__name__)


def partition_batches(
    segments: Sequence[Segment],
    batch_size: int,
    max_chars: int,
    offset: int = 0,
) -> List[TranslationBatch]:
    """Split ``segments`` into batches bounded by count and total characters.

    A segment longer than ``max_chars`` on its own still forms a batch.
    """

    batches: List[TranslationBatch] = []
    current: List[Segment] = []
    chars = 0
    start = offset
    for idx, segment in enumerate(segments):
        if current and (len(current) >= batch_size or chars + len(segment.text) > max_chars):
            batches.append(TranslationBatch(offset=start, segments=current))
            current, chars, start = [], 0, offset + idx
        current.append(segment)
        chars += len(segment.text)
    if current:
        batches.append(TranslationBatch(offset=start, segments=current))
    return batches


class TranslationOrchestrator:
    """Translate a transcript chunk by chunk, one batch at a time.

    Every returned :class:`TranslatedSegment` carries the timestamps of the
    input segment at the same index; failed batches degrade to tagged source
    text instead of aborting the run.
    """

    def __init__(
        self,
        config: TranslationConfig,
        backend: CompletionBackend,
        validator: FidelityValidator,
        checkpoint: Optional[TranslationCheckpoint] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.backend = backend
        self.validator = validator
        self.checkpoint = checkpoint
        self.sleep = sleep
        self.ladder = RecoveryLadder(backend, config, sleep=sleep)

    def translate(self, segments: Sequence[Segment]) -> List[TranslatedSegment]:
        segments = list(segments)
        translated: List[TranslatedSegment] = self.checkpoint.load(segments) if self.checkpoint else []
        if translated:
            logger.info("Resuming translation at segment %s/%s", len(translated) + 1, len(segments))

        chunk_size = max(1, self.config.chunk_size)
        chunks_done = 0
        for chunk_start in range(len(translated), len(segments), chunk_size):
            chunk = segments[chunk_start : chunk_start + chunk_size]
            logger.info(
                "Translating segments %s-%s of %s", chunk_start + 1, chunk_start + len(chunk), len(segments)
            )
            for batch in partition_batches(chunk, self.config.batch_size, self.config.max_batch_chars, chunk_start):
                translated.extend(self._translate_batch(batch))

            if self.checkpoint is not None:
                self.checkpoint.save(translated)
            chunks_done += 1
            if self._cooldown_due(chunks_done, len(translated) < len(segments)):
                logger.info("Cooling down backend after %s segments", len(translated))
                self.ladder.reset_backend()
                self.sleep(self.config.cooldown_seconds)

        fallbacks = sum(1 for segment in translated if segment.is_fallback)
        if fallbacks:
            logger.warning("%s/%s segments kept source text after failed recovery", fallbacks, len(translated))
        return translated

    def _cooldown_due(self, chunks_done: int, remaining: bool) -> bool:
        every = self.config.cooldown_every_chunks
        return remaining and every > 0 and chunks_done % every == 0

    def _translate_batch(self, batch: TranslationBatch) -> List[TranslatedSegment]:
        prompt = build_batch_prompt(batch.segments, self.config)

        def attempt(model: Optional[str]) -> List[TranslatedSegment]:
            response = self.backend.complete(prompt, model=model)
            mapping = parse_batch_response(response, len(batch))
            missing = [pos for pos in range(1, len(batch) + 1) if pos not in mapping]
            if missing:
                logger.warning("Batch %s response missing positions %s; keeping source text", batch.label, missing)
            result = [
                TranslatedSegment.from_segment(segment, mapping.get(pos, segment.text))
                for pos, segment in enumerate(batch.segments, start=1)
            ]
            self.validator.check_batch(result)
            return result

        def fallback() -> List[TranslatedSegment]:
            return [TranslatedSegment.fallback(segment) for segment in batch.segments]

        logger.debug("Translating batch %s (%s chars)", batch.label, batch.char_count)
        return self.ladder.run(attempt, fallback, label=batch.label)
