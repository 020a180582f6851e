"""Storage interfaces for the task queue and novel-promotion data."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from novel_orchestrator.storage.models import (
    Character,
    Clip,
    CreatedStoryboard,
    Episode,
    Location,
    NewCharacter,
    NewClip,
    NewLocation,
    NewStoryboard,
    NewTask,
    NewVoiceLine,
    NovelProject,
    Panel,
    Project,
    Storyboard,
    TaskJob,
    TaskRecord,
    UserPreference,
    VoiceLine,
)


class TaskQueue(Protocol):
    async def migrate(self) -> None: ...

    async def enqueue(self, task: NewTask) -> TaskRecord: ...

    async def claim(self) -> TaskJob | None: ...

    async def get_task(self, task_id: str) -> TaskRecord | None: ...

    async def update_progress(
        self, task_id: str, progress: int, meta: dict[str, Any]
    ) -> None: ...

    async def complete(self, task_id: str, result: dict[str, Any]) -> None: ...

    async def fail(self, task_id: str, error: str) -> None: ...

    async def cancel(self, task_id: str, reason: str = "cancelled") -> TaskRecord | None: ...


class NovelWriteTransaction(Protocol):
    """Writes performed inside one atomic persistence transaction."""

    async def get_episode(self, episode_id: str) -> Episode | None: ...

    async def get_clip(self, clip_id: str) -> Clip | None: ...

    async def add_characters(
        self, novel_project_id: str, items: list[NewCharacter]
    ) -> list[Character]: ...

    async def add_locations(
        self, novel_project_id: str, items: list[NewLocation]
    ) -> list[Location]: ...

    async def replace_episode_clips(
        self, episode_id: str, clips: list[NewClip]
    ) -> list[Clip]: ...

    async def replace_clip_storyboards(
        self, episode_id: str, storyboards: list[NewStoryboard]
    ) -> list[CreatedStoryboard]: ...

    async def replace_episode_voice_lines(
        self, episode_id: str, lines: list[NewVoiceLine]
    ) -> list[VoiceLine]: ...


class NovelStore(Protocol):
    async def migrate(self) -> None: ...

    async def get_project(self, project_id: str) -> Project | None: ...

    async def get_novel_project(self, project_id: str) -> NovelProject | None: ...

    async def get_user_preference(self, user_id: str) -> UserPreference | None: ...

    async def get_episode(self, episode_id: str) -> Episode | None: ...

    async def list_characters(self, novel_project_id: str) -> list[Character]: ...

    async def list_locations(self, novel_project_id: str) -> list[Location]: ...

    async def list_episode_clips(self, episode_id: str) -> list[Clip]: ...

    async def list_episode_storyboards(self, episode_id: str) -> list[Storyboard]: ...

    async def list_storyboard_panels(self, storyboard_id: str) -> list[Panel]: ...

    async def list_episode_voice_lines(self, episode_id: str) -> list[VoiceLine]: ...

    def transaction(
        self, timeout_s: float
    ) -> AbstractAsyncContextManager[NovelWriteTransaction]: ...
