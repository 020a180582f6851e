"""Step contracts and typed orchestrator results."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any

from pydantic import BaseModel, Field, model_validator


@dataclass(frozen=True)
class StepMeta:
    step_id: str
    step_title: str
    step_index: int
    step_total: int
    step_attempt: int = 1

    def for_attempt(self, attempt: int) -> StepMeta:
        """Retries keep the index and suffix the id with ``_r{attempt}``."""
        if attempt <= 1:
            return self
        return replace(self, step_id=f"{self.step_id}_r{attempt}", step_attempt=attempt)

    def as_progress_meta(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_title": self.step_title,
            "step_index": self.step_index,
            "step_total": self.step_total,
            "step_attempt": self.step_attempt,
        }


@dataclass(frozen=True)
class StepOutput:
    text: str
    reasoning: str = ""


# run_step(meta, prompt, action, max_output_tokens)
RunStep = Callable[[StepMeta, str, str, int], Awaitable[StepOutput]]


@dataclass(frozen=True)
class StoryToScriptTemplates:
    character: str
    location: str
    clip: str
    screenplay: str


@dataclass(frozen=True)
class ScriptToStoryboardTemplates:
    plan: str
    cinematography: str
    acting: str
    detail: str


class CharacterDraft(BaseModel):
    name: str
    aliases: list[str] = Field(default_factory=list)
    introduction: str = ""
    appearance: str = ""
    profile: dict[str, Any] = Field(default_factory=dict)


class LocationDraft(BaseModel):
    name: str
    summary: str = ""
    descriptions: list[str] = Field(default_factory=list)


class ClipDraft(BaseModel):
    clip_id: str
    start_text: str
    end_text: str
    content: str
    summary: str = ""
    location: str | None = None
    characters: list[str] = Field(default_factory=list)


class ScreenplayResult(BaseModel):
    """Exactly one of ``screenplay`` (success) or ``error`` (failure) is set."""

    clip_id: str
    success: bool
    screenplay: dict[str, Any] | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _check_exclusive(self) -> ScreenplayResult:
        if self.success and (self.screenplay is None or self.error is not None):
            raise ValueError("successful screenplay result needs a screenplay and no error")
        if not self.success and (self.error is None or self.screenplay is not None):
            raise ValueError("failed screenplay result needs an error and no screenplay")
        return self


class StoryToScriptSummary(BaseModel):
    clip_count: int
    screenplay_success_count: int
    screenplay_failed_count: int
    total_step_count: int


class StoryToScriptResult(BaseModel):
    analyzed_characters: list[CharacterDraft]
    analyzed_locations: list[LocationDraft]
    clip_list: list[ClipDraft]
    screenplay_results: list[ScreenplayResult]
    summary: StoryToScriptSummary


class ClipInput(BaseModel):
    """A persisted clip handed to the storyboard workflow."""

    id: str
    clip_index: int
    content: str
    screenplay: str | None = None
    location: str | None = None
    characters: list[str] = Field(default_factory=list)


class CharacterInfo(BaseModel):
    name: str
    introduction: str = ""
    appearance: str = ""


class LocationInfo(BaseModel):
    name: str
    summary: str = ""
    descriptions: list[str] = Field(default_factory=list)


class PanelPlan(BaseModel):
    panel_number: int
    description: str
    characters: list[str] = Field(default_factory=list)
    location: str | None = None
    source_text: str = ""


class PhotographyRule(BaseModel):
    panel_number: int
    composition: str = ""
    lighting: str = ""
    color_palette: str = ""
    depth_of_field: str = ""


class ActingNote(BaseModel):
    panel_number: int
    characters: list[dict[str, str]] = Field(default_factory=list)


class PanelDetail(BaseModel):
    shot_type: str = ""
    camera_move: str = ""
    description: str
    video_prompt: str = ""
    duration: float | None = None


class PanelDraft(BaseModel):
    panel_index: int
    panel_number: int
    shot_type: str = ""
    camera_move: str = ""
    description: str
    video_prompt: str = ""
    location: str | None = None
    characters: list[str] = Field(default_factory=list)
    source_text: str = ""
    duration: float | None = None
    photography_rules: dict[str, Any] | None = None
    acting_notes: list[dict[str, str]] | None = None


class ClipPanels(BaseModel):
    clip_id: str
    clip_index: int
    panels: list[PanelDraft]


class ScriptToStoryboardSummary(BaseModel):
    clip_count: int
    total_panel_count: int
    total_step_count: int


class ScriptToStoryboardResult(BaseModel):
    clip_panels: list[ClipPanels]
    summary: ScriptToStoryboardSummary
