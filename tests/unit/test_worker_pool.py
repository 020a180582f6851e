import asyncio

import pytest

from conftest import ScriptedLLM, claim_job, story_response
from novel_orchestrator.errors import TaskTerminatedError
from novel_orchestrator.storage.models import STORY_TO_SCRIPT_RUN, NewTask
from novel_orchestrator.worker.pool import WorkerPool


def _pool(queue, context, handlers) -> WorkerPool:
    return WorkerPool(
        queue,
        context,
        concurrency=1,
        poll_interval_s=0.01,
        error_backoff_s=0.01,
        handlers=handlers,
    )


def test_pool_rejects_zero_concurrency(queue, make_context) -> None:
    with pytest.raises(ValueError):
        WorkerPool(
            queue,
            make_context(ScriptedLLM(story_response)),
            concurrency=0,
            poll_interval_s=1.0,
            error_backoff_s=1.0,
        )


def test_run_once_completes_job_with_handler_result(queue, make_context) -> None:
    async def handler(job, context):
        await context.channel.report_task_progress(job, 50, {"stage": "half"})
        return {"episode_id": job.data.episode_id}

    pool = _pool(queue, make_context(ScriptedLLM(story_response)), {STORY_TO_SCRIPT_RUN: handler})

    async def _scenario():
        record = await queue.enqueue(
            NewTask(
                type=STORY_TO_SCRIPT_RUN,
                project_id="project-1",
                episode_id="episode-1",
                target_type="NovelPromotionEpisode",
                target_id="episode-1",
                user_id="user-1",
                locale="zh",
            )
        )
        assert await pool.run_once() is True
        assert await pool.run_once() is False
        return await queue.get_task(record.task_id)

    done = asyncio.run(_scenario())
    assert done.status == "completed"
    assert done.result == {"episode_id": "episode-1"}
    assert done.progress == 100


def test_handler_error_marks_task_failed(queue, make_context) -> None:
    async def handler(job, context):
        raise RuntimeError("model exploded")

    pool = _pool(queue, make_context(ScriptedLLM(story_response)), {STORY_TO_SCRIPT_RUN: handler})

    async def _scenario():
        job = await claim_job(queue, STORY_TO_SCRIPT_RUN)
        await pool.process_job(job)
        return await queue.get_task(job.data.task_id)

    record = asyncio.run(_scenario())
    assert record.status == "failed"
    assert record.error == "model exploded"


def test_terminated_task_is_not_recorded_as_failure(queue, make_context) -> None:
    async def terminated_handler(job, context):
        await queue.cancel(job.data.task_id)
        raise TaskTerminatedError(job.data.task_id, "story_to_script_persist")

    pool = _pool(
        queue, make_context(ScriptedLLM(story_response)), {STORY_TO_SCRIPT_RUN: terminated_handler}
    )

    async def _scenario():
        job = await claim_job(queue, STORY_TO_SCRIPT_RUN)
        await pool.process_job(job)
        return await queue.get_task(job.data.task_id)

    record = asyncio.run(_scenario())
    assert record.status == "cancelled"
    assert record.error == "cancelled"


def test_unsupported_task_type_fails(queue, make_context) -> None:
    pool = _pool(queue, make_context(ScriptedLLM(story_response)), {})

    async def _scenario():
        job = await claim_job(queue, "image_panel_run")
        await pool.process_job(job)
        return await queue.get_task(job.data.task_id)

    record = asyncio.run(_scenario())
    assert record.status == "failed"
    assert record.error == "Unsupported task type: image_panel_run"


def test_run_drains_queue_until_stopped(queue, make_context) -> None:
    seen: list[str] = []

    async def handler(job, context):
        seen.append(job.data.task_id)
        return {}

    pool = WorkerPool(
        queue,
        make_context(ScriptedLLM(story_response)),
        concurrency=2,
        poll_interval_s=0.01,
        error_backoff_s=0.01,
        handlers={STORY_TO_SCRIPT_RUN: handler},
    )

    async def _scenario() -> None:
        for index in range(3):
            await queue.enqueue(
                NewTask(
                    type=STORY_TO_SCRIPT_RUN,
                    project_id="project-1",
                    target_type="NovelPromotionEpisode",
                    target_id=f"episode-{index}",
                    user_id="user-1",
                    locale="zh",
                )
            )
        runner = asyncio.create_task(pool.run())
        for _ in range(200):
            if len(seen) == 3:
                break
            await asyncio.sleep(0.01)
        pool.stop()
        await asyncio.wait_for(runner, timeout=2)

    asyncio.run(_scenario())
    assert len(set(seen)) == 3
