from __future__ import annotations

import re
from typing import Callable, List, Optional, Sequence, Union

import pytest

from dubbing_agent.translation import CompletionBackend
from dubbing_agent.types import Segment

_REQUEST_LINE = re.compile(r"^\[(\d+)\|[^\]]+\] (.*)$")
_SENTENCE = re.compile(r"^Sentence: (.*)$", re.MULTILINE)


def fake_translate(text: str) -> str:
    return text.replace("Line", "Linha").replace("of the talk", "da palestra")


def answer_batch(prompt: str) -> str:
    """Answer a batch prompt the way a well-behaved model would."""

    lines = []
    for raw in prompt.splitlines():
        match = _REQUEST_LINE.match(raw)
        if match:
            lines.append(f"[{match.group(1)}] {fake_translate(match.group(2))}")
    return "\n".join(lines)


def answer_prompt(prompt: str, model: Optional[str] = None) -> str:
    sentence = _SENTENCE.search(prompt)
    if sentence:
        return fake_translate(sentence.group(1))
    return answer_batch(prompt)


class FakeBackend(CompletionBackend):
    """Scripted completion backend.

    ``responses`` is either a callable ``(prompt, model) -> str`` or a list
    consumed in order; exception instances in the list are raised.
    """

    name = "fake"

    def __init__(self, responses: Union[Callable[[str, Optional[str]], str], Sequence] = answer_prompt):
        self.responses = responses if callable(responses) else list(responses)
        self.prompts: List[str] = []
        self.models: List[Optional[str]] = []
        self.reset_calls = 0

    def complete(self, prompt: str, model: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        self.models.append(model)
        if callable(self.responses):
            return self.responses(prompt, model)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def reset(self) -> None:
        self.reset_calls += 1


def make_segments(count: int, duration_ms: int = 2000, gap_ms: int = 500) -> List[Segment]:
    segments = []
    start = 0
    for idx in range(1, count + 1):
        segments.append(Segment(start_ms=start, end_ms=start + duration_ms, text=f"Line {idx} of the talk"))
        start += duration_ms + gap_ms
    return segments


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sleeps() -> List[float]:
    return []
