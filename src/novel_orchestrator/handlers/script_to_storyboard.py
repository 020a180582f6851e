"""Task handler: script -> storyboard, followed by voice-line analysis."""

from __future__ import annotations

import logging
from typing import Any

from novel_orchestrator.errors import (
    JsonParseError,
    NotFoundError,
    TaskTerminatedError,
    TaskValidationError,
)
from novel_orchestrator.graph import script_to_storyboard as script_to_storyboard_graph
from novel_orchestrator.graph.formatting import format_introductions, join_names
from novel_orchestrator.graph.types import (
    ClipInput,
    RunStep,
    ScriptToStoryboardTemplates,
    StepMeta,
)
from novel_orchestrator.handlers.common import load_novel_episode, resolve_model_selection
from novel_orchestrator.handlers.payload import resolve_episode_id
from novel_orchestrator.handlers.persistence import (
    build_new_storyboards,
    build_storyboard_json,
    parse_voice_lines_json,
    persist_storyboards,
)
from novel_orchestrator.prompts import PromptId, build_prompt, get_prompt_template
from novel_orchestrator.storage.models import TaskJob
from novel_orchestrator.worker.context import HandlerContext
from novel_orchestrator.worker.lifecycle import TaskLifecycle, TaskPhase
from novel_orchestrator.worker.progress import stage_meta
from novel_orchestrator.worker.step_runner import build_step_runner

logger = logging.getLogger(__name__)

FLOW = "script_to_storyboard"
VOICE_STEP_ID = "voice_analyze"
VOICE_MAX_ATTEMPTS = 2
VOICE_MAX_TOKENS = 2600
PARSE_ERROR_PREVIEW_CHARS = 3000


def load_templates(locale: str) -> ScriptToStoryboardTemplates:
    return ScriptToStoryboardTemplates(
        plan=get_prompt_template(PromptId.NP_AGENT_STORYBOARD_PLAN, locale),
        cinematography=get_prompt_template(PromptId.NP_AGENT_CINEMATOGRAPHER, locale),
        acting=get_prompt_template(PromptId.NP_AGENT_ACTING_DIRECTION, locale),
        detail=get_prompt_template(PromptId.NP_AGENT_STORYBOARD_DETAIL, locale),
    )


async def run_voice_analysis(
    run_step: RunStep, prompt: str, step_total: int
) -> list[dict[str, Any]]:
    """Two attempts; cancellation is re-raised at once, the last other error surfaces."""
    base_meta = StepMeta(
        step_id=VOICE_STEP_ID,
        step_title="progress.streamStep.voiceAnalyze",
        step_index=step_total,
        step_total=step_total,
    )
    last_error: Exception | None = None
    for attempt in range(1, VOICE_MAX_ATTEMPTS + 1):
        try:
            output = await run_step(
                base_meta.for_attempt(attempt), prompt, VOICE_STEP_ID, VOICE_MAX_TOKENS
            )
            return parse_voice_lines_json(output.text)
        except TaskTerminatedError:
            raise
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            logger.warning(
                "voice_analyze event=attempt_failed attempt=%d error=%s", attempt, exc
            )
    if last_error is None:
        raise RuntimeError("voice analysis made no attempts")
    raise last_error


async def handle_script_to_storyboard_task(
    job: TaskJob, context: HandlerContext
) -> dict[str, Any]:
    data = job.data
    lifecycle = TaskLifecycle(data.task_id)
    with lifecycle.guard():
        episode_id = resolve_episode_id(data)
        loaded = await load_novel_episode(context, data, episode_id)
        clips = await context.store.list_episode_clips(episode_id)
        if not clips:
            raise TaskValidationError("No clips found")
        novel_text = loaded.episode.novel_text or ""
        if not novel_text.strip():
            raise TaskValidationError("No novel text to analyze")

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
        try:
            result = await script_to_storyboard_graph.run_script_to_storyboard_orchestrator(
                clips=[
                    ClipInput(
                        id=clip.id,
                        clip_index=clip.clip_index,
                        content=clip.content,
                        screenplay=clip.screenplay,
                        location=clip.location,
                        characters=clip.characters,
                    )
                    for clip in clips
                ],
                characters=loaded.character_infos(),
                locations=loaded.location_infos(),
                templates=templates,
                run_step=run_step,
                locale=data.locale,
            )
        except JsonParseError as exc:
            context.audit.log(
                user_id=data.user_id,
                project_id=data.project_id,
                project_name=loaded.project.name,
                action="SCRIPT_TO_STORYBOARD_PARSE_ERROR",
                model=selection.model,
                data={
                    "error": {
                        "message": str(exc),
                        "raw_text_preview": exc.raw_text[:PARSE_ERROR_PREVIEW_CHARS],
                        "raw_text_length": len(exc.raw_text),
                    }
                },
            )
            raise

        storyboards = build_new_storyboards(result)
        voice_prompt = build_prompt(
            prompt_id=PromptId.NP_VOICE_ANALYSIS,
            locale=data.locale,
            variables={
                "input": novel_text,
                "characters_lib_name": join_names(
                    [item.name for item in loaded.characters], data.locale
                ),
                "characters_introduction": format_introductions(
                    loaded.character_infos(), data.locale
                ),
                "storyboard_json": build_storyboard_json(storyboards),
            },
        )
        voice_rows = await run_voice_analysis(
            run_step, voice_prompt, result.summary.total_step_count
        )

        await context.channel.report_task_progress(job, 80, stage_meta(FLOW, "persist"))
        await context.channel.assert_task_active(job, f"{FLOW}_persist")
        lifecycle.advance(TaskPhase.PERSISTING)

        async with context.store.transaction(context.settings.persist_timeout_s) as tx:
            if await tx.get_episode(episode_id) is None:
                raise NotFoundError(f"Episode {episode_id} was deleted while the task was running")
            for clip_id in dict.fromkeys(item.clip_id for item in storyboards):
                if await tx.get_clip(clip_id) is None:
                    raise NotFoundError(f"Clip {clip_id} was deleted while the task was running")
            persisted = await persist_storyboards(
                tx,
                episode_id=episode_id,
                storyboards=storyboards,
                voice_rows=voice_rows,
            )

        await context.channel.report_task_progress(job, 96, stage_meta(FLOW, "persist_done"))
        lifecycle.advance(TaskPhase.DONE)
        logger.info(
            "script_to_storyboard event=persisted task_id=%s episode_id=%s storyboards=%d voice_lines=%d",
            data.task_id,
            episode_id,
            len(persisted.storyboards),
            len(persisted.voice_lines),
        )
        return {
            "episode_id": episode_id,
            "storyboard_count": len(persisted.storyboards),
            "panel_count": result.summary.total_panel_count,
            "voice_line_count": len(persisted.voice_lines),
        }
