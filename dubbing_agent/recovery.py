"""Recovery ladder for failing translation batches.

A batch walks ``ATTEMPT -> RECOVER_1 -> RECOVER_2 -> FALLBACK`` and stops at
``DONE`` as soon as one step succeeds. Each state makes at most one attempt.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, List, Optional, TypeVar

from .config import TranslationConfig
from .errors import ServiceError, ValidationFailure
from .translation import CompletionBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

RECOVERABLE_ERRORS = (ServiceError, ValidationFailure)


class RecoveryState(Enum):
    ATTEMPT = "attempt"
    RECOVER_1 = "recover_1"
    RECOVER_2 = "recover_2"
    FALLBACK = "fallback"
    DONE = "done"


_NEXT_STATE = {
    RecoveryState.ATTEMPT: RecoveryState.RECOVER_1,
    RecoveryState.RECOVER_1: RecoveryState.RECOVER_2,
    RecoveryState.RECOVER_2: RecoveryState.FALLBACK,
}


class RecoveryLadder:
    """Drive one unit of work through the recovery states.

    ``attempt`` receives the model override to use (``None`` for the primary
    model) and raises :class:`ServiceError` or :class:`ValidationFailure` on
    failure. ``fallback`` must not fail.
    """

    def __init__(
        self,
        backend: CompletionBackend,
        config: TranslationConfig,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.backend = backend
        self.config = config
        self.sleep = sleep
        self.history: List[RecoveryState] = []

    def run(self, attempt: Callable[[Optional[str]], T], fallback: Callable[[], T], label: str = "") -> T:
        self.history = []
        state = RecoveryState.ATTEMPT
        while True:
            self.history.append(state)
            if state is RecoveryState.FALLBACK:
                logger.error("Batch %s exhausted recovery; using fallback text", label)
                result = fallback()
                self.history.append(RecoveryState.DONE)
                return result

            model = self._prepare(state, label)
            try:
                result = attempt(model)
            except RECOVERABLE_ERRORS as exc:
                logger.warning("Batch %s failed in state %s: %s", label, state.value, exc)
                state = _NEXT_STATE[state]
                continue
            if state is not RecoveryState.ATTEMPT:
                logger.info("Batch %s recovered in state %s", label, state.value)
            self.history.append(RecoveryState.DONE)
            return result

    def _prepare(self, state: RecoveryState, label: str) -> Optional[str]:
        if state is RecoveryState.RECOVER_1:
            logger.info("Batch %s: clearing backend state and retrying in %.0fs", label, self.config.recovery_wait_seconds)
            self.reset_backend()
            self.sleep(self.config.recovery_wait_seconds)
            return None
        if state is RecoveryState.RECOVER_2:
            model = self.config.alternate_model or self.config.model
            logger.info("Batch %s: retrying with model %s in %.0fs", label, model, self.config.alternate_wait_seconds)
            self.sleep(self.config.alternate_wait_seconds)
            return model
        return None

    def reset_backend(self) -> None:
        try:
            self.backend.reset()
        except ServiceError as exc:
            logger.warning("Backend reset failed: %s", exc)
