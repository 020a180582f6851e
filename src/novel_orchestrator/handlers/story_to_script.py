"""Task handler: story -> script."""

from __future__ import annotations

import logging
from typing import Any

from novel_orchestrator.errors import (
    FailurePreview,
    NotFoundError,
    PartialFailureError,
    TaskValidationError,
)
from novel_orchestrator.graph import story_to_script as story_to_script_graph
from novel_orchestrator.graph.types import StoryToScriptTemplates
from novel_orchestrator.handlers.common import load_novel_episode, resolve_model_selection
from novel_orchestrator.handlers.payload import payload_str, resolve_episode_id
from novel_orchestrator.handlers.persistence import persist_story_to_script
from novel_orchestrator.prompts import PromptId, get_prompt_template
from novel_orchestrator.storage.models import TaskJob
from novel_orchestrator.worker.context import HandlerContext
from novel_orchestrator.worker.lifecycle import TaskLifecycle, TaskPhase
from novel_orchestrator.worker.progress import stage_meta
from novel_orchestrator.worker.step_runner import build_step_runner

logger = logging.getLogger(__name__)

FLOW = "story_to_script"
PARTIAL_FAILURE_CODE = "STORY_TO_SCRIPT_PARTIAL_FAILED"


def load_templates(locale: str) -> StoryToScriptTemplates:
    return StoryToScriptTemplates(
        character=get_prompt_template(PromptId.NP_AGENT_CHARACTER_PROFILE, locale),
        location=get_prompt_template(PromptId.NP_SELECT_LOCATION, locale),
        clip=get_prompt_template(PromptId.NP_AGENT_CLIP, locale),
        screenplay=get_prompt_template(PromptId.NP_SCREENPLAY_CONVERSION, locale),
    )


async def handle_story_to_script_task(job: TaskJob, context: HandlerContext) -> dict[str, Any]:
    data = job.data
    lifecycle = TaskLifecycle(data.task_id)
    with lifecycle.guard():
        episode_id = resolve_episode_id(data)
        requested_content = payload_str(data.payload, "content")

        loaded = await load_novel_episode(context, data, episode_id)
        content = requested_content or (loaded.episode.novel_text or "")
        if not content.strip():
            raise TaskValidationError("content is required")
        content = content[: context.settings.max_content_chars]

        selection = await resolve_model_selection(context, data)
        templates = load_templates(data.locale)
        lifecycle.advance(TaskPhase.PREPARED)
        await context.channel.report_task_progress(job, 10, stage_meta(FLOW, "prepare"))

        run_step = build_step_runner(
            job,
            context,
            flow=FLOW,
            model=selection.model,
            project_name=loaded.project.name,
            options=selection.options,
            lifecycle=lifecycle,
        )
        result = await story_to_script_graph.run_story_to_script_orchestrator(
            content=content,
            base_characters=[item.name for item in loaded.characters],
            base_locations=[item.name for item in loaded.locations],
            base_character_introductions=loaded.character_infos(),
            templates=templates,
            run_step=run_step,
            locale=data.locale,
        )

        summary = result.summary
        if summary.screenplay_failed_count > 0:
            raise PartialFailureError(
                PARTIAL_FAILURE_CODE,
                failed_count=summary.screenplay_failed_count,
                total_count=summary.clip_count,
                unit_label="screenplay steps",
                failures=[
                    FailurePreview(item_id=item.clip_id, reason=item.error or "unknown error")
                    for item in result.screenplay_results
                    if not item.success
                ],
            )

        await context.channel.report_task_progress(job, 80, stage_meta(FLOW, "persist"))
        await context.channel.assert_task_active(job, f"{FLOW}_persist")
        lifecycle.advance(TaskPhase.PERSISTING)

        async with context.store.transaction(context.settings.persist_timeout_s) as tx:
            if await tx.get_episode(episode_id) is None:
                raise NotFoundError(f"Episode {episode_id} was deleted while the task was running")
            persisted = await persist_story_to_script(
                tx,
                novel_project_id=loaded.novel_project.id,
                episode_id=episode_id,
                result=result,
            )

        await context.channel.report_task_progress(job, 96, stage_meta(FLOW, "persist_done"))
        lifecycle.advance(TaskPhase.DONE)
        logger.info(
            "story_to_script event=persisted task_id=%s episode_id=%s clips=%d characters=%d locations=%d",
            data.task_id,
            episode_id,
            len(persisted.clips),
            len(persisted.characters),
            len(persisted.locations),
        )
        return {
            "episode_id": episode_id,
            "clip_count": summary.clip_count,
            "screenplay_success_count": summary.screenplay_success_count,
            "screenplay_failed_count": summary.screenplay_failed_count,
            "persisted_characters": len(persisted.characters),
            "persisted_locations": len(persisted.locations),
            "persisted_clips": len(persisted.clips),
        }
