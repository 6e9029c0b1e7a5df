"""Fit translated text into the speaking time of its cue.

The required speaking time is estimated from the word count at a fixed
speaking rate. Text that would be rushed is shortened and text that would
leave a long silence is extended; only ``translated_text`` ever changes.
"""

from __future__ import annotations

import logging
import math
import re
from typing import List, Optional, Sequence

from .config import FittingConfig, TranslationConfig
from .errors import FitFailure, ServiceError
from .fidelity import FidelityValidator, is_self_talk
from .translation import CompletionBackend, build_extend_prompt, build_shorten_prompt, clean_single_response
from .types import TranslatedSegment

logger = logging.getLogger(__name__)

_NON_LETTERS = re.compile(r"[^\w\s]|[\d_]")


def count_words(text: str) -> int:
    """Count words after dropping everything that is not a letter."""

    return len(_NON_LETTERS.sub("", text).split())


class TimingFitter:
    def __init__(
        self,
        config: Optional[FittingConfig] = None,
        backend: Optional[CompletionBackend] = None,
        validator: Optional[FidelityValidator] = None,
        translation: Optional[TranslationConfig] = None,
    ):
        self.config = config or FittingConfig()
        self.backend = backend
        self.validator = validator or FidelityValidator(backend=backend, translation=translation)
        self.translation = translation or TranslationConfig()

    def speaking_ratio(self, segment: TranslatedSegment) -> float:
        available = segment.duration_ms / 1000.0
        required = count_words(segment.translated_text) / self.config.speaking_rate
        return required / available

    def fit(self, segments: Sequence[TranslatedSegment]) -> List[TranslatedSegment]:
        fitted = [self.fit_segment(segment) for segment in segments]
        changed = sum(1 for before, after in zip(segments, fitted) if before.translated_text != after.translated_text)
        logger.info("Timing fit adjusted %s/%s segments", changed, len(fitted))
        return fitted

    def fit_segment(self, segment: TranslatedSegment) -> TranslatedSegment:
        if segment.is_fallback:
            logger.debug("Skipping timing fit for fallback segment at %s ms", segment.start_ms)
            return segment
        if self.validator.is_untranslated(segment.source_text, segment.translated_text):
            segment = self.validator.retranslate(segment)
        if self.backend is None or count_words(segment.translated_text) == 0:
            return segment

        ratio = self.speaking_ratio(segment)
        try:
            if ratio > self.config.too_long_ratio:
                return self._shorten(segment, ratio)
            if ratio < self.config.too_short_ratio:
                return self._extend(segment, ratio)
        except FitFailure as exc:
            logger.warning("Keeping text for segment at %s ms: %s", segment.start_ms, exc)
        return segment

    def _shorten(self, segment: TranslatedSegment, ratio: float) -> TranslatedSegment:
        available = segment.duration_ms / 1000.0
        words = count_words(segment.translated_text)
        target = math.ceil(available * self.config.speaking_rate * self.config.shorten_margin)
        logger.info("Shortening segment at %s ms (ratio %.2f, %s -> %s words)", segment.start_ms, ratio, words, target)

        candidate = self._rewrite(build_shorten_prompt(segment.translated_text, available, target, self.translation))
        new_words = count_words(candidate)
        if new_words >= words or (words - new_words) / words < self.config.min_reduction:
            raise FitFailure(f"shortening ineffective ({words} -> {new_words} words)")
        return self._accept(segment, candidate)

    def _extend(self, segment: TranslatedSegment, ratio: float) -> TranslatedSegment:
        available = segment.duration_ms / 1000.0
        words = count_words(segment.translated_text)
        target = math.ceil(available * self.config.speaking_rate * self.config.extend_margin)
        logger.info("Extending segment at %s ms (ratio %.2f, %s -> %s words)", segment.start_ms, ratio, words, target)

        candidate = self._rewrite(build_extend_prompt(segment.translated_text, available, target, self.translation))
        new_words = count_words(candidate)
        if new_words <= words:
            raise FitFailure(f"extension ineffective ({words} -> {new_words} words)")
        return self._accept(segment, candidate)

    def _rewrite(self, prompt: str) -> str:
        try:
            response = self.backend.complete(prompt)
        except ServiceError as exc:
            raise FitFailure(f"rewrite call failed: {exc}") from exc
        return clean_single_response(response)

    def _accept(self, segment: TranslatedSegment, candidate: str) -> TranslatedSegment:
        # A cue body must never end up empty.
        if count_words(candidate) == 0:
            raise FitFailure("rewrite left no text")
        if self.validator.is_untranslated(segment.source_text, candidate):
            raise FitFailure("rewrite reverted to source language")
        if is_self_talk(candidate):
            raise FitFailure("rewrite is model commentary")
        return segment.with_text(candidate)
