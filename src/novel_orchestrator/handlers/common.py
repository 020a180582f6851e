"""Loading and model selection shared by the task handlers."""

from __future__ import annotations

from dataclasses import dataclass

from novel_orchestrator.errors import ModelNotConfiguredError, TaskValidationError
from novel_orchestrator.graph.types import CharacterInfo, LocationInfo
from novel_orchestrator.handlers.payload import (
    is_reasoning_effort,
    parse_reasoning_effort,
    parse_reasoning_flag,
    parse_temperature,
    payload_str,
)
from novel_orchestrator.storage.models import (
    NOVEL_PROMOTION_MODE,
    Character,
    Episode,
    Location,
    NovelProject,
    Project,
    TaskJobData,
)
from novel_orchestrator.worker.context import HandlerContext
from novel_orchestrator.worker.step_runner import StepOptions

DEFAULT_REASONING_EFFORT = "high"


@dataclass(frozen=True)
class NovelEpisodeContext:
    project: Project
    novel_project: NovelProject
    episode: Episode
    characters: list[Character]
    locations: list[Location]

    def character_infos(self) -> list[CharacterInfo]:
        return [
            CharacterInfo(name=item.name, introduction=item.introduction, appearance=item.appearance)
            for item in self.characters
        ]

    def location_infos(self) -> list[LocationInfo]:
        return [
            LocationInfo(name=item.name, summary=item.summary, descriptions=item.descriptions)
            for item in self.locations
        ]


@dataclass(frozen=True)
class ModelSelection:
    model: str
    options: StepOptions


async def load_novel_episode(
    context: HandlerContext, data: TaskJobData, episode_id: str
) -> NovelEpisodeContext:
    store = context.store
    project = await store.get_project(data.project_id)
    if project is None:
        raise TaskValidationError("Project not found")
    if project.mode != NOVEL_PROMOTION_MODE:
        raise TaskValidationError("Not a novel promotion project")

    novel_project = await store.get_novel_project(data.project_id)
    if novel_project is None:
        raise TaskValidationError("Novel promotion data not found")

    episode = await store.get_episode(episode_id)
    if episode is None or episode.novel_project_id != novel_project.id:
        raise TaskValidationError("Episode not found")

    return NovelEpisodeContext(
        project=project,
        novel_project=novel_project,
        episode=episode,
        characters=await store.list_characters(novel_project.id),
        locations=await store.list_locations(novel_project.id),
    )


async def resolve_model_selection(context: HandlerContext, data: TaskJobData) -> ModelSelection:
    """Payload model, then project config, then user preference."""
    payload = data.payload
    requested_effort = parse_reasoning_effort(payload)
    temperature = parse_temperature(payload)
    reasoning = parse_reasoning_flag(payload)

    model = payload_str(payload, "model")
    if not model:
        config = await context.model_config.get_project_model_config(data.project_id, data.user_id)
        model = (config.analysis_model or "").strip()
    if not model:
        raise ModelNotConfiguredError()

    reasoning_effort = requested_effort
    if reasoning_effort is None:
        capability = await context.model_config.resolve_capability_generation_options(
            project_id=data.project_id,
            user_id=data.user_id,
            model_type="llm",
            model_key=model,
        )
        candidate = capability.get("reasoning_effort")
        reasoning_effort = candidate if is_reasoning_effort(candidate) else DEFAULT_REASONING_EFFORT

    return ModelSelection(
        model=model,
        options=StepOptions(
            temperature=temperature,
            reasoning=reasoning,
            reasoning_effort=reasoning_effort,
        ),
    )
