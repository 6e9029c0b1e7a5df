"""Failure taxonomy for the dubbing pipeline.

Only :class:`ParseError` aborts a run; every other failure is absorbed by the
stage that raised it and degrades to original text, original timing or
pass-through audio.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence


class DubbingError(RuntimeError):
    """Base exception for the dubbing agent."""


class ParseError(DubbingError):
    """Raised when a transcript cannot be turned into valid segments."""


class ServiceError(DubbingError):
    """Raised when an external call fails, times out or returns an error."""


class CommandError(ServiceError):
    """Raised when an external command exits with an error or times out."""

    def __init__(
        self,
        command: Sequence[str] | str,
        *,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
        timeout: bool = False,
    ) -> None:
        if isinstance(command, str):
            coerced: Sequence[str] = (command,)
        elif isinstance(command, Iterable):
            coerced = tuple(str(part) for part in command)
        else:
            coerced = (str(command),)
        self.command = coerced
        self.returncode = returncode
        self.stderr = stderr
        self.timeout = timeout

        detail = []
        if returncode is not None:
            detail.append(f"return code {returncode}")
        if timeout:
            detail.append("timeout")
        detail_str = f" ({', '.join(detail)})" if detail else ""
        super().__init__(f"Command failed{detail_str}: {' '.join(coerced)}")


class ValidationFailure(DubbingError):
    """Raised when translated output fails the fidelity checks."""


class FitFailure(DubbingError):
    """Raised when a timing rewrite is unavailable or ineffective."""


class SyncFailure(DubbingError):
    """Raised (or logged) when final audio duration drifts beyond tolerance."""


__all__ = [
    "CommandError",
    "DubbingError",
    "FitFailure",
    "ParseError",
    "ServiceError",
    "SyncFailure",
    "ValidationFailure",
]
