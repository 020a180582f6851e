"""Run one LLM-backed step bound to a job's context."""

from __future__ import annotations

import math
from dataclasses import dataclass

from novel_orchestrator.graph.types import RunStep, StepMeta, StepOutput
from novel_orchestrator.llm.client import ChatOptions, get_completion_parts
from novel_orchestrator.storage.models import TaskJob
from novel_orchestrator.worker.context import HandlerContext
from novel_orchestrator.worker.lifecycle import TaskLifecycle
from novel_orchestrator.worker.progress import stage_meta

STEP_PROGRESS_BASE = 15
STEP_PROGRESS_SPAN = 55


@dataclass(frozen=True)
class StepOptions:
    temperature: float
    reasoning: bool
    reasoning_effort: str


def step_progress(step_index: int, step_total: int) -> int:
    return STEP_PROGRESS_BASE + min(
        STEP_PROGRESS_SPAN, math.floor(step_index / max(1, step_total) * STEP_PROGRESS_SPAN)
    )


def build_step_runner(
    job: TaskJob,
    context: HandlerContext,
    *,
    flow: str,
    model: str,
    project_name: str,
    options: StepOptions,
    lifecycle: TaskLifecycle | None = None,
) -> RunStep:
    """Return ``run_step(meta, prompt, action, max_output_tokens)`` for ``flow``.

    Each call checks liveness, reports progress, audits the prompt and the raw
    answer, and performs exactly one completion request.
    """
    data = job.data
    audit_prefix = flow.upper()

    async def run_step(
        meta: StepMeta, prompt: str, action: str, max_output_tokens: int
    ) -> StepOutput:
        await context.channel.assert_task_active(job, f"{flow}_step:{meta.step_id}")
        if lifecycle is not None:
            lifecycle.step_started()
        await context.channel.report_task_progress(
            job,
            step_progress(meta.step_index, meta.step_total),
            stage_meta(flow, "step", message=meta.step_title, **meta.as_progress_meta()),
        )

        context.audit.log(
            user_id=data.user_id,
            project_id=data.project_id,
            project_name=project_name,
            action=f"{audit_prefix}_PROMPT:{action}",
            model=model,
            data={
                "input": {
                    "step_id": meta.step_id,
                    "step_title": meta.step_title,
                    "prompt": prompt,
                }
            },
        )

        completion = await context.llm.chat_completion(
            data.user_id,
            model,
            [{"role": "user", "content": prompt}],
            ChatOptions(
                temperature=options.temperature,
                reasoning=options.reasoning,
                reasoning_effort=options.reasoning_effort,
                max_output_tokens=max_output_tokens,
                project_id=data.project_id,
                action=action,
                step_id=meta.step_id,
                step_attempt=meta.step_attempt,
                step_title=meta.step_title,
                step_index=meta.step_index,
                step_total=meta.step_total,
            ),
        )
        parts = get_completion_parts(completion)

        context.audit.log(
            user_id=data.user_id,
            project_id=data.project_id,
            project_name=project_name,
            action=f"{audit_prefix}_OUTPUT:{action}",
            model=model,
            data={
                "output": {
                    "step_id": meta.step_id,
                    "step_title": meta.step_title,
                    "raw_text": parts.text,
                    "text_length": len(parts.text),
                    "reasoning_length": len(parts.reasoning),
                }
            },
        )
        return StepOutput(text=parts.text, reasoning=parts.reasoning)

    return run_step
