"""Progress reporting and cooperative cancellation checkpoints."""

from __future__ import annotations

import logging
from typing import Any

from novel_orchestrator.errors import TaskTerminatedError
from novel_orchestrator.storage.base import TaskQueue
from novel_orchestrator.storage.models import TaskJob

logger = logging.getLogger(__name__)


def stage_meta(flow: str, stage: str, **extra: Any) -> dict[str, Any]:
    """Progress metadata for ``{flow}_{stage}`` with its UI label key."""
    name = f"{flow}_{stage}"
    head, *rest = name.split("_")
    label = head + "".join(part.capitalize() for part in rest)
    return {
        "stage": name,
        "stage_label": f"progress.stage.{label}",
        "display_mode": "detail",
        **extra,
    }


class TaskChannel:
    """Writes progress through the queue port and answers liveness checks."""

    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue
        self._last_progress: dict[str, int] = {}

    async def report_task_progress(self, job: TaskJob, percent: float, meta: dict[str, Any]) -> int:
        task_id = job.data.task_id
        value = max(0, min(100, int(percent)))
        value = max(value, self._last_progress.get(task_id, 0))
        self._last_progress[task_id] = value
        try:
            await self._queue.update_progress(task_id, value, meta)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "task_progress event=write_failed task_id=%s progress=%d error=%s",
                task_id,
                value,
                exc,
            )
        return value

    async def assert_task_active(self, job: TaskJob, checkpoint: str) -> None:
        task_id = job.data.task_id
        record = await self._queue.get_task(task_id)
        if record is None:
            raise TaskTerminatedError(task_id, checkpoint, reason="missing")
        if record.status == "cancelled":
            reason = "superseded" if record.error == "superseded" else "cancelled"
            raise TaskTerminatedError(task_id, checkpoint, reason=reason)
        if record.status != "processing":
            raise TaskTerminatedError(task_id, checkpoint, reason=f"no longer processing ({record.status})")

    def forget(self, job: TaskJob) -> None:
        self._last_progress.pop(job.data.task_id, None)
