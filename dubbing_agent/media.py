from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

from pydub import AudioSegment

from .errors import CommandError

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]


def run_command(command: Sequence[str], timeout: Optional[float] = None) -> "subprocess.CompletedProcess[str]":
    """Run an external command, capturing text output.

    Expiry of ``timeout`` kills the child and raises :class:`CommandError` with
    ``timeout=True``; a non-zero exit or missing executable raises it too.
    """

    command = [str(part) for part in command]
    logger.debug("Executing command: %s", " ".join(command))
    start = time.monotonic()
    try:
        completed = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        logger.warning("Command timed out after %.1fs: %s", time.monotonic() - start, command[0])
        raise CommandError(command, timeout=True) from exc
    except OSError as exc:
        logger.error("Command could not be started: %s (%s)", command[0], exc)
        raise CommandError(command) from exc

    if completed.returncode != 0:
        logger.warning("Command returned non-zero status %s: %s", completed.returncode, command[0])
        raise CommandError(command, returncode=completed.returncode, stderr=completed.stderr)
    logger.debug("Command completed in %.3fs", time.monotonic() - start)
    return completed


def get_audio_duration(audio_path: Path) -> float:
    """Return the duration of ``audio_path`` in seconds."""

    audio = AudioSegment.from_file(audio_path)
    return len(audio) / 1000.0


def build_atempo_chain(factor: float) -> str:
    """Break a tempo factor into ffmpeg-safe ``atempo`` stages (each 0.5-2.0)."""

    factors = []
    ratio = max(0.01, factor)
    while ratio > 2.0:
        factors.append(2.0)
        ratio /= 2.0
    while ratio < 0.5:
        factors.append(0.5)
        ratio *= 2.0
    factors.append(ratio)
    return ",".join(f"atempo={value:.5f}" for value in factors)
