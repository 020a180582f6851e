import asyncio

import pytest

from conftest import MODEL_KEY, ScriptedLLM, claim_job
from novel_orchestrator.errors import TaskTerminatedError
from novel_orchestrator.graph.types import StepMeta
from novel_orchestrator.storage.models import STORY_TO_SCRIPT_RUN
from novel_orchestrator.worker.step_runner import StepOptions, build_step_runner, step_progress

OPTIONS = StepOptions(temperature=0.7, reasoning=True, reasoning_effort="high")


def test_step_progress_maps_into_step_band() -> None:
    assert step_progress(0, 4) == 15
    assert step_progress(1, 4) == 28
    assert step_progress(4, 4) == 70
    assert step_progress(9, 4) == 70
    assert step_progress(1, 0) == 70


def test_run_step_reports_progress_audits_and_calls_llm(queue, audit, make_context) -> None:
    llm = ScriptedLLM(lambda options, prompt: "<think>hmm</think>{\"ok\": 1}")
    context = make_context(llm)

    async def _scenario():
        job = await claim_job(queue, STORY_TO_SCRIPT_RUN)
        run_step = build_step_runner(
            job,
            context,
            flow="story_to_script",
            model=MODEL_KEY,
            project_name="Harbor Nights",
            options=OPTIONS,
        )
        meta = StepMeta(
            step_id="split_clips", step_title="progress.streamStep.splitClips", step_index=2, step_total=4
        )
        output = await run_step(meta.for_attempt(2), "PROMPT", "split_clips", 6000)
        return job, output

    job, output = asyncio.run(_scenario())

    assert output.text == '{"ok": 1}'
    assert output.reasoning == "hmm"

    call = llm.calls[0]
    assert call.step_id == "split_clips_r2"
    assert call.step_attempt == 2
    assert call.max_output_tokens == 6000
    assert call.project_id == "project-1"

    assert audit.actions() == [
        "STORY_TO_SCRIPT_PROMPT:split_clips",
        "STORY_TO_SCRIPT_OUTPUT:split_clips",
    ]
    assert audit.entries[0]["input"]["prompt"] == "PROMPT"
    assert audit.entries[1]["output"]["raw_text"] == '{"ok": 1}'
    assert audit.entries[1]["output"]["reasoning_length"] == 3

    record = asyncio.run(queue.get_task(job.data.task_id))
    assert record.progress == 42
    assert record.progress_meta["stage"] == "story_to_script_step"
    assert record.progress_meta["step_id"] == "split_clips_r2"
    assert record.progress_meta["step_attempt"] == 2


def test_run_step_stops_before_calling_llm_when_cancelled(queue, audit, make_context) -> None:
    llm = ScriptedLLM(lambda options, prompt: "{}")
    context = make_context(llm)

    async def _scenario() -> None:
        job = await claim_job(queue, STORY_TO_SCRIPT_RUN)
        await queue.cancel(job.data.task_id)
        run_step = build_step_runner(
            job,
            context,
            flow="story_to_script",
            model=MODEL_KEY,
            project_name="Harbor Nights",
            options=OPTIONS,
        )
        meta = StepMeta(step_id="analyze_characters", step_title="t", step_index=1, step_total=4)
        with pytest.raises(TaskTerminatedError) as exc_info:
            await run_step(meta, "PROMPT", "analyze_characters", 100)
        assert exc_info.value.checkpoint == "story_to_script_step:analyze_characters"

    asyncio.run(_scenario())
    assert llm.calls == []
    assert audit.entries == []
