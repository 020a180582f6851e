"""Nodes of the story -> script workflow."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

from novel_orchestrator.errors import ClipBoundaryError, JsonParseError, TaskTerminatedError
from novel_orchestrator.graph.formatting import format_introductions, join_names
from novel_orchestrator.graph.json_output import (
    expect_list,
    expect_object,
    optional_text,
    require_text,
    text_list,
)
from novel_orchestrator.graph.state import StoryToScriptState
from novel_orchestrator.graph.steps import run_json_step
from novel_orchestrator.graph.types import (
    CharacterDraft,
    ClipDraft,
    LocationDraft,
    RunStep,
    ScreenplayResult,
    StepMeta,
    StoryToScriptSummary,
    StoryToScriptTemplates,
)
from novel_orchestrator.prompts import fill_template

logger = logging.getLogger(__name__)

# characters, locations and clip split run before the per-clip screenplays
FIXED_STEP_COUNT = 3
# rough clip length used to size the total before the split is known
CHARS_PER_CLIP_ESTIMATE = 1500

CHARACTER_MAX_TOKENS = 4000
LOCATION_MAX_TOKENS = 3000
CLIP_MAX_TOKENS = 6000
SCREENPLAY_MAX_TOKENS = 8000

_CHARACTER_FIELDS = {"name", "aliases", "introduction", "appearance"}


@dataclass(frozen=True)
class StoryToScriptDeps:
    run_step: RunStep
    templates: StoryToScriptTemplates
    locale: str


def step_total(clip_count: int) -> int:
    return FIXED_STEP_COUNT + max(1, clip_count)


def estimated_step_total(content: str) -> int:
    """Step total reported before the clip split, from the text length."""
    return step_total(math.ceil(len(content.strip()) / CHARS_PER_CLIP_ESTIMATE))


def normalize_characters(value: Any, raw_text: str) -> list[CharacterDraft]:
    items = expect_list(value, raw_text, context="characters", key="characters")
    drafts: list[CharacterDraft] = []
    seen: set[str] = set()
    for item in items:
        item = expect_object(item, raw_text, context="characters[]")
        name = require_text(item, "name", raw_text, context="characters[]")
        if name.lower() in seen:
            continue
        seen.add(name.lower())
        drafts.append(
            CharacterDraft(
                name=name,
                aliases=text_list(item.get("aliases")),
                introduction=optional_text(item, "introduction"),
                appearance=optional_text(item, "appearance"),
                profile={key: val for key, val in item.items() if key not in _CHARACTER_FIELDS},
            )
        )
    return drafts


def normalize_locations(value: Any, raw_text: str) -> list[LocationDraft]:
    items = expect_list(value, raw_text, context="locations", key="locations")
    drafts: list[LocationDraft] = []
    seen: set[str] = set()
    for item in items:
        item = expect_object(item, raw_text, context="locations[]")
        name = require_text(item, "name", raw_text, context="locations[]")
        if name.lower() in seen:
            continue
        seen.add(name.lower())
        drafts.append(
            LocationDraft(
                name=name,
                summary=optional_text(item, "summary"),
                descriptions=text_list(item.get("descriptions")),
            )
        )
    return drafts


def locate_clips(content: str, items: list[dict[str, Any]], raw_text: str) -> list[ClipDraft]:
    """Cut ``content`` at each clip's start/end markers, scanning forward."""
    clips: list[ClipDraft] = []
    cursor = 0
    for position, item in enumerate(items, start=1):
        start_text = require_text(item, "start", raw_text, context="clips[]")
        end_text = require_text(item, "end", raw_text, context="clips[]")
        start_at = content.find(start_text, cursor)
        if start_at < 0:
            raise ClipBoundaryError(f"clip {position} start marker not found: {start_text[:40]}")
        end_at = content.find(end_text, start_at)
        if end_at < 0:
            raise ClipBoundaryError(f"clip {position} end marker not found: {end_text[:40]}")
        end_at += len(end_text)
        location = optional_text(item, "location")
        clips.append(
            ClipDraft(
                clip_id=f"clip_{position}",
                start_text=start_text,
                end_text=end_text,
                content=content[start_at:end_at],
                summary=optional_text(item, "summary"),
                location=location or None,
                characters=text_list(item.get("characters")),
            )
        )
        cursor = end_at
    return clips


def normalize_screenplay(value: Any, raw_text: str) -> dict[str, Any]:
    screenplay = expect_object(value, raw_text, context="screenplay")
    if not isinstance(screenplay.get("scenes"), list):
        raise JsonParseError("screenplay: missing scenes array", raw_text)
    return screenplay


async def analyze_characters(state: StoryToScriptState, deps: StoryToScriptDeps) -> dict[str, Any]:
    meta = StepMeta(
        step_id="analyze_characters",
        step_title="progress.streamStep.analyzeCharacters",
        step_index=1,
        step_total=estimated_step_total(state["content"]),
    )
    prompt = fill_template(
        deps.templates.character,
        {
            "input": state["content"],
            "characters_lib_name": join_names(state.get("base_characters", []), deps.locale),
            "characters_introduction": format_introductions(
                state.get("base_character_introductions", []), deps.locale
            ),
        },
    )
    characters = await run_json_step(
        deps.run_step,
        meta,
        prompt,
        "analyze_characters",
        CHARACTER_MAX_TOKENS,
        normalize_characters,
    )
    return {"analyzed_characters": characters}


async def analyze_locations(state: StoryToScriptState, deps: StoryToScriptDeps) -> dict[str, Any]:
    meta = StepMeta(
        step_id="analyze_locations",
        step_title="progress.streamStep.analyzeLocations",
        step_index=2,
        step_total=estimated_step_total(state["content"]),
    )
    prompt = fill_template(
        deps.templates.location,
        {
            "input": state["content"],
            "locations_lib_name": join_names(state.get("base_locations", []), deps.locale),
        },
    )
    locations = await run_json_step(
        deps.run_step,
        meta,
        prompt,
        "analyze_locations",
        LOCATION_MAX_TOKENS,
        normalize_locations,
    )
    return {"analyzed_locations": locations}


async def split_clips(state: StoryToScriptState, deps: StoryToScriptDeps) -> dict[str, Any]:
    content = state["content"]
    location_names = [*state.get("base_locations", [])] + [
        item.name for item in state.get("analyzed_locations", [])
    ]
    character_names = [*state.get("base_characters", [])] + [
        item.name for item in state.get("analyzed_characters", [])
    ]
    meta = StepMeta(
        step_id="split_clips",
        step_title="progress.streamStep.splitClips",
        step_index=3,
        step_total=estimated_step_total(state["content"]),
    )
    prompt = fill_template(
        deps.templates.clip,
        {
            "input": content,
            "locations_lib_name": join_names(_unique(location_names), deps.locale),
            "characters_lib_name": join_names(_unique(character_names), deps.locale),
        },
    )

    def _normalize(value: Any, raw_text: str) -> list[ClipDraft]:
        items = expect_list(value, raw_text, context="clips", key="clips")
        if not items:
            raise JsonParseError("clips: model returned no clips", raw_text)
        return locate_clips(
            content, [expect_object(item, raw_text, context="clips[]") for item in items], raw_text
        )

    clips = await run_json_step(
        deps.run_step, meta, prompt, "split_clips", CLIP_MAX_TOKENS, _normalize
    )
    return {"clip_list": clips}


async def convert_screenplays(
    state: StoryToScriptState, deps: StoryToScriptDeps
) -> dict[str, Any]:
    clips = state.get("clip_list", [])
    total = step_total(len(clips))
    character_names = _unique(
        [*state.get("base_characters", [])]
        + [item.name for item in state.get("analyzed_characters", [])]
    )
    location_names = _unique(
        [*state.get("base_locations", [])]
        + [item.name for item in state.get("analyzed_locations", [])]
    )
    introductions = format_introductions(
        state.get("base_character_introductions", []), deps.locale
    )
    results: list[ScreenplayResult] = []
    for position, clip in enumerate(clips, start=1):
        meta = StepMeta(
            step_id=f"screenplay_{clip.clip_id}",
            step_title="progress.streamStep.screenplayConversion",
            step_index=FIXED_STEP_COUNT + position,
            step_total=total,
        )
        prompt = fill_template(
            deps.templates.screenplay,
            {
                "clip_content": clip.content,
                "clip_id": clip.clip_id,
                "locations_lib_name": join_names(location_names, deps.locale),
                "characters_lib_name": join_names(character_names, deps.locale),
                "characters_introduction": introductions,
            },
        )
        try:
            screenplay = await run_json_step(
                deps.run_step,
                meta,
                prompt,
                "screenplay_conversion",
                SCREENPLAY_MAX_TOKENS,
                normalize_screenplay,
            )
        except TaskTerminatedError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "screenplay event=failed clip_id=%s error=%s", clip.clip_id, exc
            )
            results.append(
                ScreenplayResult(clip_id=clip.clip_id, success=False, error=str(exc) or type(exc).__name__)
            )
            continue
        results.append(ScreenplayResult(clip_id=clip.clip_id, success=True, screenplay=screenplay))
    return {"screenplay_results": results}


async def summarize(state: StoryToScriptState, deps: StoryToScriptDeps) -> dict[str, Any]:
    results = state.get("screenplay_results", [])
    success_count = sum(1 for item in results if item.success)
    clip_count = len(state.get("clip_list", []))
    return {
        "summary": StoryToScriptSummary(
            clip_count=clip_count,
            screenplay_success_count=success_count,
            screenplay_failed_count=len(results) - success_count,
            total_step_count=step_total(clip_count),
        )
    }


def _unique(names: list[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for name in names:
        key = name.strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        output.append(name.strip())
    return output
