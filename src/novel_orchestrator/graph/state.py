"""Typed state contracts for the LangGraph workflows."""

from typing import TypedDict

from novel_orchestrator.graph.types import (
    ActingNote,
    CharacterDraft,
    CharacterInfo,
    ClipDraft,
    ClipInput,
    ClipPanels,
    LocationDraft,
    LocationInfo,
    PanelDetail,
    PanelPlan,
    PhotographyRule,
    ScreenplayResult,
    ScriptToStoryboardSummary,
    StoryToScriptSummary,
)


class StoryToScriptState(TypedDict, total=False):
    content: str
    base_characters: list[str]
    base_locations: list[str]
    base_character_introductions: list[CharacterInfo]
    analyzed_characters: list[CharacterDraft]
    analyzed_locations: list[LocationDraft]
    clip_list: list[ClipDraft]
    screenplay_results: list[ScreenplayResult]
    summary: StoryToScriptSummary


class ScriptToStoryboardState(TypedDict, total=False):
    clips: list[ClipInput]
    characters: list[CharacterInfo]
    locations: list[LocationInfo]
    # keyed by clip id
    planned_panels: dict[str, list[PanelPlan]]
    photography_rules: dict[str, dict[int, PhotographyRule]]
    acting_notes: dict[str, dict[int, ActingNote]]
    panel_details: dict[str, list[PanelDetail]]
    clip_panels: list[ClipPanels]
    summary: ScriptToStoryboardSummary


def initial_story_to_script_state(
    content: str,
    base_characters: list[str] | None = None,
    base_locations: list[str] | None = None,
    base_character_introductions: list[CharacterInfo] | None = None,
) -> StoryToScriptState:
    return {
        "content": content,
        "base_characters": list(base_characters or []),
        "base_locations": list(base_locations or []),
        "base_character_introductions": list(base_character_introductions or []),
        "analyzed_characters": [],
        "analyzed_locations": [],
        "clip_list": [],
        "screenplay_results": [],
    }


def initial_script_to_storyboard_state(
    clips: list[ClipInput],
    characters: list[CharacterInfo] | None = None,
    locations: list[LocationInfo] | None = None,
) -> ScriptToStoryboardState:
    return {
        "clips": list(clips),
        "characters": list(characters or []),
        "locations": list(locations or []),
        "planned_panels": {},
        "photography_rules": {},
        "acting_notes": {},
        "panel_details": {},
        "clip_panels": [],
    }
