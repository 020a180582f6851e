"""Per-task phase tracking."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

logger = logging.getLogger(__name__)


class TaskPhase(str, Enum):
    RECEIVED = "received"
    PREPARED = "prepared"
    STEP_RUNNING = "step_running"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


_TERMINAL = {TaskPhase.DONE, TaskPhase.FAILED}

_ALLOWED: dict[TaskPhase, set[TaskPhase]] = {
    TaskPhase.RECEIVED: {TaskPhase.PREPARED},
    TaskPhase.PREPARED: {TaskPhase.STEP_RUNNING, TaskPhase.PERSISTING},
    TaskPhase.STEP_RUNNING: {TaskPhase.STEP_RUNNING, TaskPhase.PERSISTING},
    TaskPhase.PERSISTING: {TaskPhase.DONE},
}


class InvalidTransitionError(RuntimeError):
    pass


class TaskLifecycle:
    """``received -> prepared -> step_running* -> persisting -> done``; ``failed`` from any live phase."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        self.phase = TaskPhase.RECEIVED
        self.steps_started = 0

    def advance(self, target: TaskPhase) -> None:
        if self.phase in _TERMINAL:
            raise InvalidTransitionError(
                f"task {self.task_id} already {self.phase.value}; cannot enter {target.value}"
            )
        if target == TaskPhase.FAILED or target in _ALLOWED.get(self.phase, set()):
            logger.debug(
                "task_lifecycle event=transition task_id=%s from=%s to=%s",
                self.task_id,
                self.phase.value,
                target.value,
            )
            if target == TaskPhase.STEP_RUNNING:
                self.steps_started += 1
            self.phase = target
            return
        raise InvalidTransitionError(
            f"task {self.task_id} cannot move from {self.phase.value} to {target.value}"
        )

    def step_started(self) -> None:
        self.advance(TaskPhase.STEP_RUNNING)

    @contextmanager
    def guard(self) -> Iterator[TaskLifecycle]:
        """Mark the task failed when the wrapped block raises."""
        try:
            yield self
        except BaseException:
            if self.phase not in _TERMINAL:
                self.advance(TaskPhase.FAILED)
            raise
