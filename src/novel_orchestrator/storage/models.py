"""Storage models shared by the queue, handlers and persistence backends."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

TaskStatus = Literal["queued", "processing", "completed", "failed", "cancelled"]
ACTIVE_TASK_STATUSES: tuple[str, ...] = ("queued", "processing")

STORY_TO_SCRIPT_RUN = "story_to_script_run"
SCRIPT_TO_STORYBOARD_RUN = "script_to_storyboard_run"

NOVEL_PROMOTION_MODE = "novel-promotion"


class TaskJobData(BaseModel):
    """Immutable job description handed to a task handler."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    type: str
    project_id: str
    episode_id: str | None = None
    target_type: str
    target_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    user_id: str
    locale: str


class TaskJob(BaseModel):
    """One claimed unit of queued work."""

    model_config = ConfigDict(frozen=True)

    id: str
    data: TaskJobData


class NewTask(BaseModel):
    type: str
    project_id: str
    episode_id: str | None = None
    target_type: str
    target_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    user_id: str
    locale: str
    dedupe_key: str | None = None
    priority: int = 0


class TaskRecord(BaseModel):
    """Persisted queue row."""

    task_id: str
    job_id: str
    type: str
    project_id: str
    episode_id: str | None = None
    target_type: str
    target_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    user_id: str
    locale: str
    dedupe_key: str | None = None
    priority: int = 0
    status: TaskStatus = "queued"
    progress: int = 0
    progress_meta: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def to_job(self) -> TaskJob:
        return TaskJob(
            id=self.job_id,
            data=TaskJobData(
                task_id=self.task_id,
                type=self.type,
                project_id=self.project_id,
                episode_id=self.episode_id,
                target_type=self.target_type,
                target_id=self.target_id,
                payload=dict(self.payload),
                user_id=self.user_id,
                locale=self.locale,
            ),
        )


class Project(BaseModel):
    id: str
    name: str
    mode: str


class NovelProject(BaseModel):
    """Novel-promotion settings attached to a project."""

    id: str
    project_id: str
    analysis_model: str | None = None
    # model_key -> generation options, e.g. {"reasoning_effort": "medium"}
    capability_overrides: dict[str, dict[str, Any]] = Field(default_factory=dict)


class UserPreference(BaseModel):
    user_id: str
    analysis_model: str | None = None
    capability_overrides: dict[str, dict[str, Any]] = Field(default_factory=dict)


class Character(BaseModel):
    id: str
    novel_project_id: str
    name: str
    aliases: list[str] = Field(default_factory=list)
    introduction: str = ""
    appearance: str = ""
    profile: dict[str, Any] | None = None


class Location(BaseModel):
    id: str
    novel_project_id: str
    name: str
    summary: str = ""
    descriptions: list[str] = Field(default_factory=list)


class Episode(BaseModel):
    id: str
    novel_project_id: str
    name: str = ""
    novel_text: str | None = None


class Clip(BaseModel):
    id: str
    episode_id: str
    clip_key: str
    clip_index: int
    content: str
    summary: str = ""
    location: str | None = None
    characters: list[str] = Field(default_factory=list)
    start_text: str = ""
    end_text: str = ""
    screenplay: str | None = None
    created_at: datetime


class Storyboard(BaseModel):
    id: str
    episode_id: str
    clip_id: str
    panel_count: int = 0


class Panel(BaseModel):
    id: str
    storyboard_id: str
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
    acting_notes: list[dict[str, Any]] | None = None


class VoiceLine(BaseModel):
    id: str
    episode_id: str
    line_index: int
    speaker: str
    content: str
    emotion_strength: float
    matched_panel_id: str | None = None
    matched_storyboard_id: str | None = None
    matched_panel_index: int | None = None


class NewCharacter(BaseModel):
    name: str
    aliases: list[str] = Field(default_factory=list)
    introduction: str = ""
    appearance: str = ""
    profile: dict[str, Any] | None = None


class NewLocation(BaseModel):
    name: str
    summary: str = ""
    descriptions: list[str] = Field(default_factory=list)


class NewClip(BaseModel):
    clip_key: str
    clip_index: int
    content: str
    summary: str = ""
    location: str | None = None
    characters: list[str] = Field(default_factory=list)
    start_text: str = ""
    end_text: str = ""
    screenplay: str | None = None


class NewPanel(BaseModel):
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
    acting_notes: list[dict[str, Any]] | None = None


class NewStoryboard(BaseModel):
    storyboard_id: str
    clip_id: str
    panels: list[NewPanel] = Field(default_factory=list)


class NewVoiceLine(BaseModel):
    line_index: int
    speaker: str
    content: str
    emotion_strength: float
    matched_panel_id: str | None = None
    matched_storyboard_id: str | None = None
    matched_panel_index: int | None = None


class CreatedStoryboard(BaseModel):
    storyboard: Storyboard
    panels: list[Panel] = Field(default_factory=list)
