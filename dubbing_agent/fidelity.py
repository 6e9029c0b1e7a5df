"""Detection and repair of untranslated or hallucinated model output."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from .config import FidelityConfig, TranslationConfig
from .errors import ServiceError, ValidationFailure
from .translation import CompletionBackend, build_retranslate_prompt, clean_single_response
from .types import TranslatedSegment

logger = logging.getLogger(__name__)

# Common English words; a "translation" dominated by them was left in the source language.
FUNCTION_WORDS = frozenset(
    """
    the and for are but not you all can her was one our had words use each which their time
    will about if up out many then them would like into him has more go no way could my than
    first been call who its now find long down day did get come made may part over new sound
    take only little work know place year live me back give most very after thing just name
    good sentence man think say great where help through much before line right too any same
    tell boy follow came want show also around form three small set put end
    """.split()
)

ASSISTANT_PHRASES = (
    "as an ai",
    "as an assistant",
    "as a language model",
    "i cannot translate",
    "como assistente",
    "como ia",
    "sou uma ia",
    "não posso",
)

_NON_LETTERS = re.compile(r"[^a-z]")


def is_untranslated(source: str, translated: str, config: Optional[FidelityConfig] = None) -> bool:
    """Return True when ``translated`` looks like the source text left as is."""

    config = config or FidelityConfig()
    original = source.strip().lower()
    candidate = translated.strip().lower()
    if original == candidate:
        return True
    if Levenshtein.normalized_similarity(original, candidate) > config.similarity_threshold:
        return True

    words = candidate.split()
    if len(words) > 2:
        hits = 0
        for word in words:
            letters = _NON_LETTERS.sub("", word)
            if len(letters) >= config.min_word_length and letters in FUNCTION_WORDS:
                hits += 1
        if hits / len(words) > config.function_word_ratio:
            return True
    return False


def is_self_talk(text: str) -> bool:
    """Return True when the model talks about itself instead of answering."""

    lowered = text.lower()
    return any(phrase in lowered for phrase in ASSISTANT_PHRASES)


def is_hallucination(source: str, translated: str, config: Optional[FidelityConfig] = None) -> bool:
    """Return True for output far longer than its source or talking about itself."""

    config = config or FidelityConfig()
    if len(translated) > max(len(source) * config.max_length_ratio, config.min_hallucination_chars):
        return True
    return is_self_talk(translated)


class FidelityValidator:
    """Batch acceptance checks plus single-segment re-translation."""

    def __init__(
        self,
        config: Optional[FidelityConfig] = None,
        backend: Optional[CompletionBackend] = None,
        translation: Optional[TranslationConfig] = None,
    ):
        self.config = config or FidelityConfig()
        self.backend = backend
        self.translation = translation or TranslationConfig()

    def is_untranslated(self, source: str, translated: str) -> bool:
        return is_untranslated(source, translated, self.config)

    def check_batch(self, segments: Sequence[TranslatedSegment]) -> None:
        """Raise :class:`ValidationFailure` if the batch must not be accepted."""

        if not segments:
            return
        untranslated = 0
        for segment in segments:
            if is_hallucination(segment.source_text, segment.translated_text, self.config):
                logger.warning("Hallucinated translation rejected: %.60s", segment.translated_text)
                raise ValidationFailure(f"hallucinated output for segment at {segment.start_ms} ms")
            if self.is_untranslated(segment.source_text, segment.translated_text):
                untranslated += 1
                logger.debug("Untranslated text: %r -> %r", segment.source_text, segment.translated_text)

        ratio = untranslated / len(segments)
        if ratio > self.config.max_untranslated_ratio:
            logger.warning("Too many untranslated segments: %s/%s (%.1f%%)", untranslated, len(segments), ratio * 100)
            raise ValidationFailure(f"{untranslated}/{len(segments)} segments untranslated")
        if untranslated:
            logger.info("Accepting batch with %s/%s untranslated segments", untranslated, len(segments))

    def retranslate(self, segment: TranslatedSegment) -> TranslatedSegment:
        """One isolated re-translation; the prior text is kept if it does not help."""

        if self.backend is None:
            return segment
        prompt = build_retranslate_prompt(segment.source_text, self.translation)
        try:
            response = self.backend.complete(prompt)
        except ServiceError as exc:
            logger.warning("Re-translation failed for %r: %s", segment.source_text, exc)
            return segment

        candidate = clean_single_response(response)
        if (
            not candidate
            or self.is_untranslated(segment.source_text, candidate)
            or is_hallucination(segment.source_text, candidate, self.config)
        ):
            logger.warning("Re-translation rejected for %r: %r", segment.source_text, candidate)
            return segment
        logger.info("Re-translated segment at %s ms", segment.start_ms)
        return segment.with_text(candidate)

    def revalidate(self, segments: Sequence[TranslatedSegment]) -> List[TranslatedSegment]:
        """Re-translate every flagged or fallback-tagged segment once."""

        result: List[TranslatedSegment] = []
        attempted = repaired = 0
        for segment in segments:
            if segment.is_fallback or self.is_untranslated(segment.source_text, segment.translated_text):
                attempted += 1
                updated = self.retranslate(segment)
                if updated is not segment:
                    repaired += 1
                result.append(updated)
            else:
                result.append(segment)
        if attempted:
            logger.info("Revalidation repaired %s/%s flagged segments", repaired, attempted)
        return result
