"""Nodes of the script -> storyboard workflow.

Step numbering: one plan step per clip, then one cinematography and one
acting step per clip, then one detail step per planned panel. Until the
plan is known the total is estimated as four steps per clip.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from novel_orchestrator.errors import JsonParseError
from novel_orchestrator.graph.formatting import (
    format_appearances,
    format_characters_info,
    format_introductions,
    format_locations,
    join_names,
    to_prompt_json,
)
from novel_orchestrator.graph.json_output import (
    expect_list,
    expect_object,
    optional_text,
    require_panel_number,
    require_text,
    text_list,
)
from novel_orchestrator.graph.state import ScriptToStoryboardState
from novel_orchestrator.graph.steps import run_json_step
from novel_orchestrator.graph.types import (
    ActingNote,
    ClipInput,
    ClipPanels,
    PanelDetail,
    PanelDraft,
    PanelPlan,
    PhotographyRule,
    RunStep,
    ScriptToStoryboardSummary,
    ScriptToStoryboardTemplates,
    StepMeta,
)
from novel_orchestrator.prompts import fill_template

PLAN_MAX_TOKENS = 6000
CINEMATOGRAPHY_MAX_TOKENS = 4000
ACTING_MAX_TOKENS = 4000
DETAIL_MAX_TOKENS = 2000


@dataclass(frozen=True)
class ScriptToStoryboardDeps:
    run_step: RunStep
    templates: ScriptToStoryboardTemplates
    locale: str


def estimated_total(clip_count: int) -> int:
    return max(1, 4 * clip_count)


def planned_total(clip_count: int, panel_count: int) -> int:
    return 3 * clip_count + panel_count


def normalize_plan(value: Any, raw_text: str) -> list[PanelPlan]:
    items = expect_list(value, raw_text, context="storyboard_plan", key="panels")
    if not items:
        raise JsonParseError("storyboard_plan: model returned no panels", raw_text)
    plans: list[PanelPlan] = []
    seen: set[int] = set()
    for item in items:
        item = expect_object(item, raw_text, context="storyboard_plan[]")
        number = require_panel_number(item, raw_text, context="storyboard_plan[]")
        if number in seen:
            raise JsonParseError(f"storyboard_plan: duplicate panel_number {number}", raw_text)
        seen.add(number)
        location = optional_text(item, "location")
        plans.append(
            PanelPlan(
                panel_number=number,
                description=require_text(item, "description", raw_text, context="storyboard_plan[]"),
                characters=text_list(item.get("characters")),
                location=location or None,
                source_text=optional_text(item, "source_text"),
            )
        )
    return plans


def _known_number(item: dict[str, Any], known: set[int], raw_text: str, context: str) -> int:
    number = require_panel_number(item, raw_text, context=context)
    if number not in known:
        raise JsonParseError(f"{context}: references unknown panel {number}", raw_text)
    return number


def photography_normalizer(known: set[int]):
    def _normalize(value: Any, raw_text: str) -> dict[int, PhotographyRule]:
        items = expect_list(value, raw_text, context="cinematography", key="panels")
        rules: dict[int, PhotographyRule] = {}
        for item in items:
            item = expect_object(item, raw_text, context="cinematography[]")
            number = _known_number(item, known, raw_text, "cinematography[]")
            rules[number] = PhotographyRule(
                panel_number=number,
                composition=optional_text(item, "composition"),
                lighting=optional_text(item, "lighting"),
                color_palette=optional_text(item, "color_palette"),
                depth_of_field=optional_text(item, "depth_of_field"),
            )
        return rules

    return _normalize


def acting_normalizer(known: set[int]):
    def _normalize(value: Any, raw_text: str) -> dict[int, ActingNote]:
        items = expect_list(value, raw_text, context="acting_direction", key="panels")
        notes: dict[int, ActingNote] = {}
        for item in items:
            item = expect_object(item, raw_text, context="acting_direction[]")
            number = _known_number(item, known, raw_text, "acting_direction[]")
            characters = item.get("characters")
            if not isinstance(characters, list):
                raise JsonParseError("acting_direction[]: characters must be an array", raw_text)
            entries = []
            for entry in characters:
                entry = expect_object(entry, raw_text, context="acting_direction[].characters[]")
                entries.append(
                    {
                        "name": require_text(
                            entry, "name", raw_text, context="acting_direction[].characters[]"
                        ),
                        "acting": optional_text(entry, "acting"),
                    }
                )
            notes[number] = ActingNote(panel_number=number, characters=entries)
        return notes

    return _normalize


def normalize_detail(value: Any, raw_text: str) -> PanelDetail:
    item = expect_object(value, raw_text, context="storyboard_detail")
    duration = item.get("duration")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration <= 0:
        duration = None
    return PanelDetail(
        shot_type=optional_text(item, "shot_type"),
        camera_move=optional_text(item, "camera_move"),
        description=require_text(item, "description", raw_text, context="storyboard_detail"),
        video_prompt=optional_text(item, "video_prompt"),
        duration=float(duration) if duration is not None else None,
    )


def _clip_json(clip: ClipInput) -> str:
    return clip.screenplay if clip.screenplay and clip.screenplay.strip() else clip.content


def _plans_json(plans: list[PanelPlan]) -> str:
    return to_prompt_json([plan.model_dump() for plan in plans])


async def plan_panels(state: ScriptToStoryboardState, deps: ScriptToStoryboardDeps) -> dict[str, Any]:
    clips = state["clips"]
    characters = state.get("characters", [])
    locations = state.get("locations", [])
    total = estimated_total(len(clips))
    planned: dict[str, list[PanelPlan]] = {}
    for position, clip in enumerate(clips, start=1):
        meta = StepMeta(
            step_id=f"clip_{position}_plan",
            step_title="progress.streamStep.storyboardPlan",
            step_index=position,
            step_total=total,
        )
        prompt = fill_template(
            deps.templates.plan,
            {
                "clip_content": clip.content,
                "clip_json": _clip_json(clip),
                "characters_lib_name": join_names([item.name for item in characters], deps.locale),
                "locations_lib_name": join_names([item.name for item in locations], deps.locale),
                "characters_introduction": format_introductions(characters, deps.locale),
                "characters_appearance_list": format_appearances(characters, deps.locale),
                "locations_description": format_locations(locations, deps.locale),
            },
        )
        planned[clip.id] = await run_json_step(
            deps.run_step, meta, prompt, "storyboard_plan", PLAN_MAX_TOKENS, normalize_plan
        )
    return {"planned_panels": planned}


async def cinematography(
    state: ScriptToStoryboardState, deps: ScriptToStoryboardDeps
) -> dict[str, Any]:
    clips = state["clips"]
    planned = state["planned_panels"]
    total = planned_total(len(clips), sum(len(items) for items in planned.values()))
    rules: dict[str, dict[int, PhotographyRule]] = {}
    for position, clip in enumerate(clips, start=1):
        plans = planned[clip.id]
        meta = StepMeta(
            step_id=f"clip_{position}_cinematography",
            step_title="progress.streamStep.cinematography",
            step_index=len(clips) + position,
            step_total=total,
        )
        prompt = fill_template(
            deps.templates.cinematography,
            {
                "panels_json": _plans_json(plans),
                "locations_description": format_locations(state.get("locations", []), deps.locale),
                "characters_info": format_characters_info(state.get("characters", []), deps.locale),
            },
        )
        rules[clip.id] = await run_json_step(
            deps.run_step,
            meta,
            prompt,
            "cinematography",
            CINEMATOGRAPHY_MAX_TOKENS,
            photography_normalizer({plan.panel_number for plan in plans}),
        )
    return {"photography_rules": rules}


async def acting_direction(
    state: ScriptToStoryboardState, deps: ScriptToStoryboardDeps
) -> dict[str, Any]:
    clips = state["clips"]
    planned = state["planned_panels"]
    total = planned_total(len(clips), sum(len(items) for items in planned.values()))
    notes: dict[str, dict[int, ActingNote]] = {}
    for position, clip in enumerate(clips, start=1):
        plans = planned[clip.id]
        meta = StepMeta(
            step_id=f"clip_{position}_acting",
            step_title="progress.streamStep.actingDirection",
            step_index=2 * len(clips) + position,
            step_total=total,
        )
        prompt = fill_template(
            deps.templates.acting,
            {
                "panels_json": _plans_json(plans),
                "characters_info": format_characters_info(state.get("characters", []), deps.locale),
            },
        )
        notes[clip.id] = await run_json_step(
            deps.run_step,
            meta,
            prompt,
            "acting_direction",
            ACTING_MAX_TOKENS,
            acting_normalizer({plan.panel_number for plan in plans}),
        )
    return {"acting_notes": notes}


async def expand_panel_details(
    state: ScriptToStoryboardState, deps: ScriptToStoryboardDeps
) -> dict[str, Any]:
    clips = state["clips"]
    planned = state["planned_panels"]
    total = planned_total(len(clips), sum(len(items) for items in planned.values()))
    step_index = 3 * len(clips)
    details: dict[str, list[PanelDetail]] = {}
    for position, clip in enumerate(clips, start=1):
        rules = state["photography_rules"].get(clip.id, {})
        notes = state["acting_notes"].get(clip.id, {})
        clip_details: list[PanelDetail] = []
        for plan in planned[clip.id]:
            step_index += 1
            rule = rules.get(plan.panel_number)
            note = notes.get(plan.panel_number)
            meta = StepMeta(
                step_id=f"clip_{position}_panel_{plan.panel_number}_detail",
                step_title="progress.streamStep.storyboardDetail",
                step_index=step_index,
                step_total=total,
            )
            prompt = fill_template(
                deps.templates.detail,
                {
                    "panel_json": to_prompt_json(plan.model_dump()),
                    "photography_json": to_prompt_json(rule.model_dump() if rule else {}),
                    "acting_json": to_prompt_json(note.characters if note else []),
                    "clip_content": clip.content,
                },
            )
            clip_details.append(
                await run_json_step(
                    deps.run_step,
                    meta,
                    prompt,
                    "storyboard_detail",
                    DETAIL_MAX_TOKENS,
                    normalize_detail,
                )
            )
        details[clip.id] = clip_details
    return {"panel_details": details}


async def assemble(state: ScriptToStoryboardState, deps: ScriptToStoryboardDeps) -> dict[str, Any]:
    clips = state["clips"]
    clip_panels: list[ClipPanels] = []
    panel_count = 0
    for clip in clips:
        plans = state["planned_panels"][clip.id]
        details = state["panel_details"][clip.id]
        rules = state["photography_rules"].get(clip.id, {})
        notes = state["acting_notes"].get(clip.id, {})
        panels: list[PanelDraft] = []
        for panel_index, (plan, detail) in enumerate(zip(plans, details, strict=True), start=1):
            rule = rules.get(plan.panel_number)
            note = notes.get(plan.panel_number)
            panels.append(
                PanelDraft(
                    panel_index=panel_index,
                    panel_number=plan.panel_number,
                    shot_type=detail.shot_type,
                    camera_move=detail.camera_move,
                    description=detail.description,
                    video_prompt=detail.video_prompt,
                    location=plan.location,
                    characters=plan.characters,
                    source_text=plan.source_text,
                    duration=detail.duration,
                    photography_rules=(
                        rule.model_dump(exclude={"panel_number"}) if rule else None
                    ),
                    acting_notes=note.characters if note else None,
                )
            )
        panel_count += len(panels)
        clip_panels.append(ClipPanels(clip_id=clip.id, clip_index=clip.clip_index, panels=panels))
    return {
        "clip_panels": clip_panels,
        "summary": ScriptToStoryboardSummary(
            clip_count=len(clips),
            total_panel_count=panel_count,
            total_step_count=planned_total(len(clips), panel_count),
        ),
    }
