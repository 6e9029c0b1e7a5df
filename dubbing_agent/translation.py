from __future__ import annotations

import logging
import os
import re
from typing import Dict, Optional, Sequence

import requests
from openai import OpenAI, OpenAIError

from .config import TranslationConfig
from .errors import ServiceError
from .types import Segment

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a professional translator producing natural dubbing scripts."

_TIMING_TAG = re.compile(r"\[(\d+)\|[^\]]+\]")
_NUMBERED_LINE = re.compile(r"^\[(\d+)\]\s*(.*)$")
_BRACKET_NOTE = re.compile(r"\[(?!\d+\])[^\]]*\]")
_PAREN_NOTE = re.compile(r"\(.*?\)")
_EMPHASIS = re.compile(r"\*([^*]+)\*")
_DASH_COMMENT = re.compile(r"\s*–\s*[^.]*\.")
_LEADING_NUMBER = re.compile(r"^(?:\[\d+\]|\d+[.)])\s*")
_ANSWER_PREFIX = re.compile(r"^(?:translation|tradução|resposta|answer)\s*:\s*", re.IGNORECASE)


class CompletionBackend:
    """A text completion service: prompt in, free text out."""

    name = "base"

    def complete(self, prompt: str, model: Optional[str] = None) -> str:
        raise NotImplementedError

    def reset(self) -> None:
        """Release stateful resources held by the service (no-op by default)."""


class OpenAICompletionBackend(CompletionBackend):
    """Completion backend for OpenAI-compatible Chat Completions endpoints."""

    name = "openai"

    def __init__(self, config: TranslationConfig, client: Optional[OpenAI] = None):
        self.config = config
        if client is not None and config.api_base:
            logger.warning("Ignoring provided OpenAI client because custom api_base was supplied.")
            client = None
        kwargs = {}
        if config.api_base:
            kwargs["base_url"] = config.api_base
        if config.api_key_env:
            api_key = os.getenv(config.api_key_env)
            if api_key:
                kwargs["api_key"] = api_key
        self.client = client or OpenAI(**kwargs)

    def complete(self, prompt: str, model: Optional[str] = None) -> str:
        try:
            response = self.client.chat.completions.create(
                model=model or self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.config.temperature,
                timeout=self.config.timeout,
            )
        except OpenAIError as exc:
            raise ServiceError(f"OpenAI completion failed: {exc}") from exc
        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise ServiceError("OpenAI completion returned an empty response")
        return content


class DeepSeekBackend(CompletionBackend):
    """Completion backend for the DeepSeek REST API."""

    name = "deepseek"

    def __init__(self, config: TranslationConfig):
        self.config = config
        self.api_key = os.getenv(config.api_key_env or "DEEPSEEK_API_KEY")
        if not self.api_key:
            raise RuntimeError(
                f"DeepSeek API key not found. Please set environment variable '{config.api_key_env or 'DEEPSEEK_API_KEY'}'."
            )
        self.base_url = (config.api_base or "https://api.deepseek.com").rstrip("/")

    def complete(self, prompt: str, model: Optional[str] = None) -> str:
        url = f"{self.base_url}/v1/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = {
            "model": model or self.config.model or "deepseek-chat",
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.config.temperature,
        }
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self.config.timeout)
        except requests.RequestException as exc:
            raise ServiceError(f"DeepSeek request failed: {exc}") from exc
        if response.status_code >= 400:
            logger.warning("DeepSeek completion failed (HTTP %s): %s", response.status_code, response.text)
            raise ServiceError(f"DeepSeek returned HTTP {response.status_code}")
        try:
            content = response.json()["choices"][0]["message"]["content"].strip()
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ServiceError(f"Malformed DeepSeek response: {exc}") from exc
        if not content:
            raise ServiceError("DeepSeek returned an empty response")
        return content


class OllamaBackend(CompletionBackend):
    """Completion backend for a local Ollama server.

    The loaded model keeps GPU/RAM state between calls; :meth:`reset` asks the
    server to unload it, which is the first recovery step after a failure.
    """

    name = "ollama"

    def __init__(self, config: TranslationConfig):
        self.config = config
        self.base_url = (config.api_base or "http://localhost:11434").rstrip("/")

    def complete(self, prompt: str, model: Optional[str] = None) -> str:
        payload = {
            "model": model or self.config.model,
            "prompt": f"{SYSTEM_PROMPT}\n\n{prompt}",
            "stream": False,
            "options": {"temperature": self.config.temperature},
        }
        try:
            response = requests.post(f"{self.base_url}/api/generate", json=payload, timeout=self.config.timeout)
        except requests.RequestException as exc:
            raise ServiceError(f"Ollama request failed: {exc}") from exc
        if response.status_code >= 400:
            raise ServiceError(f"Ollama returned HTTP {response.status_code}: {response.text}")
        try:
            content = (response.json().get("response") or "").strip()
        except ValueError as exc:
            raise ServiceError(f"Malformed Ollama response: {exc}") from exc
        if not content:
            raise ServiceError("Ollama returned an empty response")
        return content

    def reset(self) -> None:
        models = {self.config.model, self.config.alternate_model} - {None}
        for model in models:
            try:
                requests.post(
                    f"{self.base_url}/api/generate",
                    json={"model": model, "keep_alive": 0},
                    timeout=self.config.timeout,
                )
                logger.info("Unloaded Ollama model %s", model)
            except requests.RequestException as exc:
                logger.warning("Could not unload Ollama model %s: %s", model, exc)


def build_backend(config: TranslationConfig, client: Optional[OpenAI] = None) -> CompletionBackend:
    provider = (config.provider or "openai").lower()
    if provider == "openai":
        return OpenAICompletionBackend(config=config, client=client)
    if provider == "deepseek":
        return DeepSeekBackend(config=config)
    if provider == "ollama":
        return OllamaBackend(config=config)
    raise ValueError(f"Unsupported translation provider: {config.provider}")


def build_batch_prompt(segments: Sequence[Segment], config: TranslationConfig) -> str:
    """Build the batch request; each line is tagged ``[n|start-end]``."""

    lines = [
        f"[{idx}|{segment.start_ms / 1000:.1f}s-{segment.end_ms / 1000:.1f}s] {segment.text}"
        for idx, segment in enumerate(segments, start=1)
    ]
    return (
        f"Translate to {config.target_language} for synchronized video dubbing.\n"
        "TIMING RULES:\n"
        f"- Each line has format [number|start-end] followed by {config.source_language} text\n"
        "- The timestamp shows how much time you have for that translation\n"
        "- Short time (< 2s) = concise, direct translation\n"
        "- Long time (> 6s) = natural, complete phrasing\n"
        "- Keep technical terms, code and file names in the original language\n"
        "- Respond with the same [number] format but REMOVE the timestamp from your answer\n"
        "- Respond ONLY with the numbered translations, one per line\n\n" + "\n".join(lines)
    )


def build_retranslate_prompt(text: str, config: TranslationConfig) -> str:
    return (
        f"CRITICAL: Translate this sentence from {config.source_language} to {config.target_language} for dubbing.\n"
        "RULES:\n"
        "- Keep technical terms and code in the original language\n"
        f"- Respond ONLY with the {config.target_language} translation (no numbering, no notes)\n\n"
        f"Sentence: {text}\n\n"
        "Translation:"
    )


def build_shorten_prompt(text: str, seconds: float, target_words: int, config: TranslationConfig) -> str:
    return (
        f"Simplify this {config.target_language} text to fit {seconds:.1f} seconds of speech "
        f"(MAX {target_words} words). The text is currently too long and will sound rushed.\n"
        "RULES:\n"
        "- Remove unnecessary words, use shorter synonyms\n"
        "- Keep only the essential meaning\n"
        f"- Answer in {config.target_language} with the simplified text only, no explanations\n\n"
        f"Original: {text}\n\n"
        f"Simplified version ({target_words} words or less):"
    )


def build_extend_prompt(text: str, seconds: float, target_words: int, config: TranslationConfig) -> str:
    return (
        f"Extend this short {config.target_language} text to naturally fill {seconds:.1f} seconds "
        f"(target {target_words} words).\n"
        "RULES:\n"
        "- Keep the original meaning and context\n"
        "- Add natural, conversational phrasing\n"
        f"- No asterisks or markdown; answer in {config.target_language} with the extended text only\n\n"
        f"Short text: {text}\n\n"
        "Extended version:"
    )


def clean_response_text(text: str) -> str:
    """Strip model commentary from a translated line and collapse whitespace."""

    text = _TIMING_TAG.sub(r"[\1]", text)
    text = _BRACKET_NOTE.sub("", text)
    text = _PAREN_NOTE.sub("", text)
    text = text.replace("**", "")
    text = _EMPHASIS.sub(r"\1", text)
    text = _DASH_COMMENT.sub("", text)
    text = " ".join(text.split())
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1].strip()
    return text


def clean_single_response(text: str) -> str:
    """Clean a one-sentence answer: numbering, answer prefixes and commentary."""

    text = " ".join(text.split())
    text = _LEADING_NUMBER.sub("", text)
    text = _ANSWER_PREFIX.sub("", text)
    return clean_response_text(text)


def parse_batch_response(response: str, count: int) -> Dict[int, str]:
    """Map 1-based positions to cleaned translations found in ``response``.

    Only ``[n] text`` lines with ``1 <= n <= count`` are kept; the first
    occurrence of a position wins.
    """

    translations: Dict[int, str] = {}
    for raw in response.splitlines():
        line = _TIMING_TAG.sub(r"[\1]", raw.strip())
        match = _NUMBERED_LINE.match(line)
        if not match:
            continue
        position = int(match.group(1))
        if not 1 <= position <= count or position in translations:
            continue
        cleaned = clean_response_text(match.group(2))
        if cleaned:
            translations[position] = cleaned
    return translations
