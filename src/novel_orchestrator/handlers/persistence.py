"""Validate generated entities and write them inside one transaction.

Clips, storyboards and voice lines are written as replace-sets: every row in
the scope is deleted and the new full set inserted, so re-running a task
leaves exactly one copy. Characters and locations are additive.
"""

from __future__ import annotations

import json
import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from novel_orchestrator.errors import JsonParseError, PersistenceValidationError
from novel_orchestrator.graph.json_output import expect_list, parse_json_payload
from novel_orchestrator.graph.types import ScriptToStoryboardResult, StoryToScriptResult
from novel_orchestrator.storage.base import NovelWriteTransaction
from novel_orchestrator.storage.models import (
    Character,
    Clip,
    CreatedStoryboard,
    Location,
    NewCharacter,
    NewClip,
    NewLocation,
    NewPanel,
    NewStoryboard,
    NewVoiceLine,
    VoiceLine,
)

MIN_EMOTION_STRENGTH = 0.1
MAX_EMOTION_STRENGTH = 1.0


@dataclass(frozen=True)
class StoryToScriptPersisted:
    characters: list[Character]
    locations: list[Location]
    clips: list[Clip]


@dataclass(frozen=True)
class StoryboardPersisted:
    storyboards: list[CreatedStoryboard]
    voice_lines: list[VoiceLine]


def _require_text(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise PersistenceValidationError(message)
    return value.strip()


def build_story_entities(
    result: StoryToScriptResult,
) -> tuple[list[NewCharacter], list[NewLocation], list[NewClip]]:
    characters = [
        NewCharacter(
            name=_require_text(item.name, f"character {position} has an empty name"),
            aliases=item.aliases,
            introduction=item.introduction,
            appearance=item.appearance,
            profile=item.profile or None,
        )
        for position, item in enumerate(result.analyzed_characters, start=1)
    ]
    locations = [
        NewLocation(
            name=_require_text(item.name, f"location {position} has an empty name"),
            summary=item.summary,
            descriptions=item.descriptions,
        )
        for position, item in enumerate(result.analyzed_locations, start=1)
    ]
    screenplays = {
        item.clip_id: item.screenplay
        for item in result.screenplay_results
        if item.success and item.screenplay is not None
    }
    clips: list[NewClip] = []
    for position, clip in enumerate(result.clip_list, start=1):
        screenplay = screenplays.get(clip.clip_id)
        clips.append(
            NewClip(
                clip_key=clip.clip_id,
                clip_index=position,
                content=_require_text(clip.content, f"clip {clip.clip_id} has empty content"),
                summary=clip.summary,
                location=clip.location,
                characters=clip.characters,
                start_text=clip.start_text,
                end_text=clip.end_text,
                screenplay=(
                    json.dumps(screenplay, ensure_ascii=False) if screenplay is not None else None
                ),
            )
        )
    return characters, locations, clips


async def persist_story_to_script(
    tx: NovelWriteTransaction,
    *,
    novel_project_id: str,
    episode_id: str,
    result: StoryToScriptResult,
) -> StoryToScriptPersisted:
    characters, locations, clips = build_story_entities(result)
    return StoryToScriptPersisted(
        characters=await tx.add_characters(novel_project_id, characters),
        locations=await tx.add_locations(novel_project_id, locations),
        clips=await tx.replace_episode_clips(episode_id, clips),
    )


def build_new_storyboards(
    result: ScriptToStoryboardResult,
    id_factory: Callable[[], str] = lambda: str(uuid4()),
) -> list[NewStoryboard]:
    """Assign storyboard ids up front so voice lines can reference them."""
    storyboards: list[NewStoryboard] = []
    for clip in result.clip_panels:
        panels = [
            NewPanel(
                panel_index=panel.panel_index,
                panel_number=panel.panel_number,
                shot_type=panel.shot_type,
                camera_move=panel.camera_move,
                description=_require_text(
                    panel.description,
                    f"clip {clip.clip_id} panel {panel.panel_index} has an empty description",
                ),
                video_prompt=panel.video_prompt,
                location=panel.location,
                characters=panel.characters,
                source_text=panel.source_text,
                duration=panel.duration,
                photography_rules=panel.photography_rules,
                acting_notes=panel.acting_notes,
            )
            for panel in clip.panels
        ]
        storyboards.append(NewStoryboard(storyboard_id=id_factory(), clip_id=clip.clip_id, panels=panels))
    return storyboards


def build_storyboard_json(storyboards: list[NewStoryboard]) -> str:
    return json.dumps(
        [
            {
                "storyboardId": item.storyboard_id,
                "panels": [
                    {
                        "panelIndex": panel.panel_index,
                        "description": panel.description,
                        "characters": panel.characters,
                        "sourceText": panel.source_text,
                    }
                    for panel in item.panels
                ],
            }
            for item in storyboards
        ],
        ensure_ascii=False,
        indent=2,
    )


def parse_voice_lines_json(text: str) -> list[dict[str, Any]]:
    value = parse_json_payload(text)
    rows = expect_list(value, text, context="voice_lines", key="voice_lines")
    for row in rows:
        if not isinstance(row, dict):
            raise JsonParseError("voice_lines: every item must be an object", text)
    return rows


def panel_lookup(storyboards: list[CreatedStoryboard]) -> dict[str, str]:
    """``"{storyboard_id}:{panel_index}" -> panel id`` for panels created in this transaction."""
    return {
        f"{item.storyboard.id}:{panel.panel_index}": panel.id
        for item in storyboards
        for panel in item.panels
    }


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and math.isfinite(value):
        value = math.floor(value)
    if isinstance(value, int) and value > 0:
        return value
    return None


def validate_voice_lines(rows: list[dict[str, Any]], lookup: dict[str, str]) -> list[NewVoiceLine]:
    lines: list[NewVoiceLine] = []
    for position, row in enumerate(rows, start=1):
        matched = row.get("matchedPanel")
        matched_storyboard_id: str | None = None
        matched_panel_index: int | None = None
        matched_panel_id: str | None = None
        if matched is not None:
            if not isinstance(matched, dict):
                raise PersistenceValidationError(
                    f"voice line {position} has invalid matchedPanel reference"
                )
            storyboard_id = matched.get("storyboardId")
            matched_storyboard_id = storyboard_id.strip() if isinstance(storyboard_id, str) else None
            matched_panel_index = _positive_int(matched.get("panelIndex"))
            if not matched_storyboard_id or matched_panel_index is None:
                raise PersistenceValidationError(
                    f"voice line {position} has invalid matchedPanel reference"
                )
            key = f"{matched_storyboard_id}:{matched_panel_index}"
            matched_panel_id = lookup.get(key)
            if matched_panel_id is None:
                raise PersistenceValidationError(
                    f"voice line {position} references non-existent panel {key}"
                )

        emotion = row.get("emotionStrength")
        if isinstance(emotion, bool) or not isinstance(emotion, (int, float)) or not math.isfinite(emotion):
            raise PersistenceValidationError(f"voice line {position} is missing valid emotionStrength")

        raw_index = row.get("lineIndex")
        if isinstance(raw_index, bool) or not isinstance(raw_index, (int, float)) or not math.isfinite(raw_index):
            raise PersistenceValidationError(f"voice line {position} is missing valid lineIndex")
        line_index = math.floor(raw_index)
        if line_index <= 0:
            raise PersistenceValidationError(f"voice line {position} has invalid lineIndex")

        speaker = _require_text(row.get("speaker"), f"voice line {position} is missing valid speaker")
        content = row.get("content")
        _require_text(content, f"voice line {position} is missing valid content")

        lines.append(
            NewVoiceLine(
                line_index=line_index,
                speaker=speaker,
                content=content,
                emotion_strength=min(MAX_EMOTION_STRENGTH, max(MIN_EMOTION_STRENGTH, float(emotion))),
                matched_panel_id=matched_panel_id,
                matched_storyboard_id=matched_storyboard_id if matched_panel_id else None,
                matched_panel_index=matched_panel_index,
            )
        )
    return lines


async def persist_storyboards(
    tx: NovelWriteTransaction,
    *,
    episode_id: str,
    storyboards: list[NewStoryboard],
    voice_rows: list[dict[str, Any]],
) -> StoryboardPersisted:
    created = await tx.replace_clip_storyboards(episode_id, storyboards)
    lines = validate_voice_lines(voice_rows, panel_lookup(created))
    return StoryboardPersisted(
        storyboards=created,
        voice_lines=await tx.replace_episode_voice_lines(episode_id, lines),
    )
