"""Minimal saga: forward steps paired with undo callbacks, rolled back newest-first."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from services.ingestion.errors import CompensationError

LOGGER = logging.getLogger(__name__)

UndoFn = Callable[[], Awaitable[None]]


class SagaState(str, Enum):
    STARTED = "started"
    BLOB_WRITTEN = "blob_written"
    DESCRIBED = "described"
    PERSISTED = "persisted"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


# Forward transitions allowed while the saga is still in flight.
_FORWARD = {
    SagaState.STARTED: {SagaState.BLOB_WRITTEN},
    SagaState.BLOB_WRITTEN: {SagaState.DESCRIBED},
    SagaState.DESCRIBED: {SagaState.PERSISTED},
    SagaState.PERSISTED: {SagaState.COMMITTED},
}

TERMINAL_STATES = frozenset({SagaState.COMMITTED, SagaState.ROLLED_BACK, SagaState.FAILED})


class Saga:
    """Track one ingestion attempt's progress and the side effects to undo.

    `rollback` runs every registered undo in reverse order. Undo failures
    are logged and collected in `compensation_errors`; they never raise.
    The saga ends `rolled_back` when every undo succeeded, or `failed` when
    there was nothing to undo or an undo itself failed.
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self.state = SagaState.STARTED
        self.history: List[SagaState] = [SagaState.STARTED]
        self.error: Optional[BaseException] = None
        self.compensation_errors: List[CompensationError] = []
        self._undo: List[Tuple[str, UndoFn]] = []

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def _move(self, state: SagaState) -> None:
        self.state = state
        self.history.append(state)

    def advance(self, state: SagaState, undo: Optional[Tuple[str, UndoFn]] = None) -> None:
        """Record a completed forward step, optionally with the undo for its side effect."""
        if state not in _FORWARD.get(self.state, set()):
            raise RuntimeError(f"Invalid saga transition {self.state.value} -> {state.value}")
        self._move(state)
        if undo is not None:
            self._undo.append(undo)

    def commit(self) -> None:
        self.advance(SagaState.COMMITTED)
        self._undo.clear()

    async def rollback(self, error: BaseException) -> SagaState:
        if self.finished:
            raise RuntimeError(f"Saga already finished in state {self.state.value}")
        self.error = error

        if not self._undo:
            self._move(SagaState.FAILED)
            return self.state

        while self._undo:
            step, undo = self._undo.pop()
            try:
                await undo()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                failure = CompensationError(step, exc)
                self.compensation_errors.append(failure)
                LOGGER.error("%s [%s]: %s", self.label or "saga", step, failure)

        self._move(SagaState.FAILED if self.compensation_errors else SagaState.ROLLED_BACK)
        return self.state
