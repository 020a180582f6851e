import asyncio
import logging

import pytest

from conftest import claim_job
from novel_orchestrator.errors import TaskTerminatedError
from novel_orchestrator.storage.memory import InMemoryTaskQueue
from novel_orchestrator.storage.models import STORY_TO_SCRIPT_RUN
from novel_orchestrator.worker.lifecycle import InvalidTransitionError, TaskLifecycle, TaskPhase
from novel_orchestrator.worker.progress import TaskChannel, stage_meta


class _BrokenProgressQueue(InMemoryTaskQueue):
    async def update_progress(self, task_id, progress, meta) -> None:
        raise ConnectionError("database went away")


def test_stage_meta_builds_label_key() -> None:
    meta = stage_meta("script_to_storyboard", "persist_done", message="x")
    assert meta["stage"] == "script_to_storyboard_persist_done"
    assert meta["stage_label"] == "progress.stage.scriptToStoryboardPersistDone"
    assert meta["display_mode"] == "detail"
    assert meta["message"] == "x"


def test_progress_is_clamped_and_monotonic(queue) -> None:
    async def _scenario() -> None:
        job = await claim_job(queue, STORY_TO_SCRIPT_RUN)
        channel = TaskChannel(queue)
        assert await channel.report_task_progress(job, 40, {"stage": "a"}) == 40
        assert await channel.report_task_progress(job, 20, {"stage": "b"}) == 40
        assert await channel.report_task_progress(job, 140, {"stage": "c"}) == 100
        record = await queue.get_task(job.data.task_id)
        assert record.progress == 100
        assert record.progress_meta == {"stage": "c"}

    asyncio.run(_scenario())


def test_progress_write_failure_is_logged_not_raised(caplog) -> None:
    async def _scenario() -> None:
        queue = _BrokenProgressQueue()
        job = await claim_job(queue, STORY_TO_SCRIPT_RUN)
        channel = TaskChannel(queue)
        assert await channel.report_task_progress(job, 30, {}) == 30

    with caplog.at_level(logging.WARNING):
        asyncio.run(_scenario())
    assert "task_progress event=write_failed" in caplog.text


def test_assert_task_active_reports_superseded(queue) -> None:
    async def _scenario() -> None:
        job = await claim_job(queue, STORY_TO_SCRIPT_RUN)
        channel = TaskChannel(queue)
        await channel.assert_task_active(job, "prepare")

        # A newer task for the same episode supersedes the running one.
        await claim_job(queue, STORY_TO_SCRIPT_RUN)
        with pytest.raises(TaskTerminatedError) as exc_info:
            await channel.assert_task_active(job, "story_to_script_persist")
        assert exc_info.value.reason == "superseded"
        assert exc_info.value.checkpoint == "story_to_script_persist"

    asyncio.run(_scenario())


def test_assert_task_active_reports_cancelled(queue) -> None:
    async def _scenario() -> None:
        job = await claim_job(queue, STORY_TO_SCRIPT_RUN)
        await queue.cancel(job.data.task_id)
        with pytest.raises(TaskTerminatedError) as exc_info:
            await TaskChannel(queue).assert_task_active(job, "step")
        assert exc_info.value.reason == "cancelled"

    asyncio.run(_scenario())


def test_lifecycle_happy_path_and_invalid_transitions() -> None:
    lifecycle = TaskLifecycle("task-1")
    with pytest.raises(InvalidTransitionError):
        lifecycle.advance(TaskPhase.PERSISTING)

    lifecycle.advance(TaskPhase.PREPARED)
    lifecycle.step_started()
    lifecycle.step_started()
    lifecycle.advance(TaskPhase.PERSISTING)
    lifecycle.advance(TaskPhase.DONE)
    assert lifecycle.steps_started == 2

    with pytest.raises(InvalidTransitionError):
        lifecycle.advance(TaskPhase.FAILED)


def test_lifecycle_guard_marks_failure() -> None:
    lifecycle = TaskLifecycle("task-1")
    with pytest.raises(ValueError):
        with lifecycle.guard():
            lifecycle.advance(TaskPhase.PREPARED)
            raise ValueError("boom")
    assert lifecycle.phase == TaskPhase.FAILED
