"""In-memory queue and novel store for tests and local runs."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from novel_orchestrator.errors import PersistenceTimeoutError
from novel_orchestrator.storage.models import (
    ACTIVE_TASK_STATUSES,
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


class InMemoryTaskQueue:
    """Single-process queue with the same claim and supersede rules as Postgres."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskRecord] = {}
        self._next_job_id = 1
        self._lock = asyncio.Lock()

    async def migrate(self) -> None:
        return None

    async def enqueue(self, task: NewTask) -> TaskRecord:
        now = datetime.now(UTC)
        async with self._lock:
            if task.dedupe_key:
                for existing in list(self._tasks.values()):
                    if (
                        existing.dedupe_key == task.dedupe_key
                        and existing.status in ACTIVE_TASK_STATUSES
                    ):
                        self._tasks[existing.task_id] = existing.model_copy(
                            update={
                                "status": "cancelled",
                                "error": "superseded",
                                "updated_at": now,
                                "finished_at": now,
                            }
                        )
            record = TaskRecord(
                task_id=str(uuid4()),
                job_id=str(self._next_job_id),
                created_at=now,
                updated_at=now,
                **task.model_dump(),
            )
            self._next_job_id += 1
            self._tasks[record.task_id] = record
            return record

    async def claim(self) -> TaskJob | None:
        async with self._lock:
            queued = [item for item in self._tasks.values() if item.status == "queued"]
            if not queued:
                return None
            queued.sort(key=lambda item: (-item.priority, int(item.job_id)))
            now = datetime.now(UTC)
            claimed = queued[0].model_copy(
                update={"status": "processing", "started_at": now, "updated_at": now}
            )
            self._tasks[claimed.task_id] = claimed
            return claimed.to_job()

    async def get_task(self, task_id: str) -> TaskRecord | None:
        return self._tasks.get(task_id)

    async def update_progress(self, task_id: str, progress: int, meta: dict[str, Any]) -> None:
        async with self._lock:
            current = self._tasks.get(task_id)
            if current is None or current.status != "processing":
                return
            self._tasks[task_id] = current.model_copy(
                update={
                    "progress": max(current.progress, progress),
                    "progress_meta": dict(meta),
                    "updated_at": datetime.now(UTC),
                }
            )

    async def complete(self, task_id: str, result: dict[str, Any]) -> None:
        await self._finish(task_id, status="completed", result=result, error=None)

    async def fail(self, task_id: str, error: str) -> None:
        await self._finish(task_id, status="failed", result=None, error=error)

    async def cancel(self, task_id: str, reason: str = "cancelled") -> TaskRecord | None:
        async with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                return None
            if current.status in ACTIVE_TASK_STATUSES:
                now = datetime.now(UTC)
                current = current.model_copy(
                    update={
                        "status": "cancelled",
                        "error": reason,
                        "updated_at": now,
                        "finished_at": now,
                    }
                )
                self._tasks[task_id] = current
            return current

    async def _finish(
        self,
        task_id: str,
        *,
        status: str,
        result: dict[str, Any] | None,
        error: str | None,
    ) -> None:
        async with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                raise KeyError(f"Task {task_id} does not exist")
            # A cancelled task keeps its terminal state.
            if current.status != "processing":
                return
            now = datetime.now(UTC)
            update: dict[str, Any] = {
                "status": status,
                "result": result,
                "error": error,
                "updated_at": now,
                "finished_at": now,
            }
            if status == "completed":
                update["progress"] = 100
            self._tasks[task_id] = current.model_copy(update=update)


@dataclass
class _NovelTables:
    projects: dict[str, Project] = field(default_factory=dict)
    novel_projects: dict[str, NovelProject] = field(default_factory=dict)
    user_preferences: dict[str, UserPreference] = field(default_factory=dict)
    episodes: dict[str, Episode] = field(default_factory=dict)
    characters: dict[str, Character] = field(default_factory=dict)
    locations: dict[str, Location] = field(default_factory=dict)
    clips: dict[str, Clip] = field(default_factory=dict)
    storyboards: dict[str, Storyboard] = field(default_factory=dict)
    panels: dict[str, Panel] = field(default_factory=dict)
    voice_lines: dict[str, VoiceLine] = field(default_factory=dict)


class InMemoryNovelTransaction:
    """Operates on a working copy that the store swaps in on commit."""

    def __init__(self, tables: _NovelTables) -> None:
        self._tables = tables

    async def get_episode(self, episode_id: str) -> Episode | None:
        return self._tables.episodes.get(episode_id)

    async def get_clip(self, clip_id: str) -> Clip | None:
        return self._tables.clips.get(clip_id)

    async def add_characters(
        self, novel_project_id: str, items: list[NewCharacter]
    ) -> list[Character]:
        known = {
            item.name.lower()
            for item in self._tables.characters.values()
            if item.novel_project_id == novel_project_id
        }
        created: list[Character] = []
        for item in items:
            if item.name.lower() in known:
                continue
            known.add(item.name.lower())
            record = Character(id=str(uuid4()), novel_project_id=novel_project_id, **item.model_dump())
            self._tables.characters[record.id] = record
            created.append(record)
        return created

    async def add_locations(
        self, novel_project_id: str, items: list[NewLocation]
    ) -> list[Location]:
        known = {
            item.name.lower()
            for item in self._tables.locations.values()
            if item.novel_project_id == novel_project_id
        }
        created: list[Location] = []
        for item in items:
            if item.name.lower() in known:
                continue
            known.add(item.name.lower())
            record = Location(id=str(uuid4()), novel_project_id=novel_project_id, **item.model_dump())
            self._tables.locations[record.id] = record
            created.append(record)
        return created

    async def replace_episode_clips(self, episode_id: str, clips: list[NewClip]) -> list[Clip]:
        stale = [key for key, item in self._tables.clips.items() if item.episode_id == episode_id]
        for clip_id in stale:
            del self._tables.clips[clip_id]
            self._drop_clip_storyboards(clip_id)
        now = datetime.now(UTC)
        created: list[Clip] = []
        for item in clips:
            record = Clip(id=str(uuid4()), episode_id=episode_id, created_at=now, **item.model_dump())
            self._tables.clips[record.id] = record
            created.append(record)
        return created

    async def replace_clip_storyboards(
        self, episode_id: str, storyboards: list[NewStoryboard]
    ) -> list[CreatedStoryboard]:
        for item in storyboards:
            self._drop_clip_storyboards(item.clip_id)
        created: list[CreatedStoryboard] = []
        for item in storyboards:
            storyboard = Storyboard(
                id=item.storyboard_id,
                episode_id=episode_id,
                clip_id=item.clip_id,
                panel_count=len(item.panels),
            )
            self._tables.storyboards[storyboard.id] = storyboard
            panels: list[Panel] = []
            for panel in item.panels:
                record = Panel(id=str(uuid4()), storyboard_id=storyboard.id, **panel.model_dump())
                self._tables.panels[record.id] = record
                panels.append(record)
            created.append(CreatedStoryboard(storyboard=storyboard, panels=panels))
        return created

    async def replace_episode_voice_lines(
        self, episode_id: str, lines: list[NewVoiceLine]
    ) -> list[VoiceLine]:
        stale = [
            key for key, item in self._tables.voice_lines.items() if item.episode_id == episode_id
        ]
        for line_id in stale:
            del self._tables.voice_lines[line_id]
        created: list[VoiceLine] = []
        for item in lines:
            record = VoiceLine(id=str(uuid4()), episode_id=episode_id, **item.model_dump())
            self._tables.voice_lines[record.id] = record
            created.append(record)
        return created

    def _drop_clip_storyboards(self, clip_id: str) -> None:
        stale = [key for key, item in self._tables.storyboards.items() if item.clip_id == clip_id]
        for storyboard_id in stale:
            del self._tables.storyboards[storyboard_id]
            for panel_id in [
                key
                for key, panel in self._tables.panels.items()
                if panel.storyboard_id == storyboard_id
            ]:
                del self._tables.panels[panel_id]
                self._unlink_voice_lines(panel_id)

    def _unlink_voice_lines(self, panel_id: str) -> None:
        for line_id, line in list(self._tables.voice_lines.items()):
            if line.matched_panel_id == panel_id:
                self._tables.voice_lines[line_id] = line.model_copy(
                    update={"matched_panel_id": None}
                )


class InMemoryNovelStore:
    """Novel-promotion data kept in process memory."""

    def __init__(self) -> None:
        self._tables = _NovelTables()
        self._write_lock = asyncio.Lock()

    async def migrate(self) -> None:
        return None

    # Seeding helpers used by tests and local runs.
    def put_project(self, project: Project) -> Project:
        self._tables.projects[project.id] = project
        return project

    def put_novel_project(self, novel_project: NovelProject) -> NovelProject:
        self._tables.novel_projects[novel_project.id] = novel_project
        return novel_project

    def put_user_preference(self, preference: UserPreference) -> UserPreference:
        self._tables.user_preferences[preference.user_id] = preference
        return preference

    def put_episode(self, episode: Episode) -> Episode:
        self._tables.episodes[episode.id] = episode
        return episode

    def put_character(self, character: Character) -> Character:
        self._tables.characters[character.id] = character
        return character

    def put_location(self, location: Location) -> Location:
        self._tables.locations[location.id] = location
        return location

    def put_clip(self, clip: Clip) -> Clip:
        self._tables.clips[clip.id] = clip
        return clip

    def delete_episode(self, episode_id: str) -> None:
        self._tables.episodes.pop(episode_id, None)

    def delete_clip(self, clip_id: str) -> None:
        self._tables.clips.pop(clip_id, None)

    async def get_project(self, project_id: str) -> Project | None:
        return self._tables.projects.get(project_id)

    async def get_novel_project(self, project_id: str) -> NovelProject | None:
        for item in self._tables.novel_projects.values():
            if item.project_id == project_id:
                return item
        return None

    async def get_user_preference(self, user_id: str) -> UserPreference | None:
        return self._tables.user_preferences.get(user_id)

    async def get_episode(self, episode_id: str) -> Episode | None:
        return self._tables.episodes.get(episode_id)

    async def list_characters(self, novel_project_id: str) -> list[Character]:
        return [
            item
            for item in self._tables.characters.values()
            if item.novel_project_id == novel_project_id
        ]

    async def list_locations(self, novel_project_id: str) -> list[Location]:
        return [
            item
            for item in self._tables.locations.values()
            if item.novel_project_id == novel_project_id
        ]

    async def list_episode_clips(self, episode_id: str) -> list[Clip]:
        clips = [item for item in self._tables.clips.values() if item.episode_id == episode_id]
        return sorted(clips, key=lambda item: (item.clip_index, item.created_at))

    async def list_episode_storyboards(self, episode_id: str) -> list[Storyboard]:
        return [
            item for item in self._tables.storyboards.values() if item.episode_id == episode_id
        ]

    async def list_storyboard_panels(self, storyboard_id: str) -> list[Panel]:
        panels = [
            item for item in self._tables.panels.values() if item.storyboard_id == storyboard_id
        ]
        return sorted(panels, key=lambda item: item.panel_index)

    async def list_episode_voice_lines(self, episode_id: str) -> list[VoiceLine]:
        lines = [
            item for item in self._tables.voice_lines.values() if item.episode_id == episode_id
        ]
        return sorted(lines, key=lambda item: item.line_index)

    @asynccontextmanager
    async def transaction(self, timeout_s: float) -> AsyncIterator[InMemoryNovelTransaction]:
        async with self._write_lock:
            working = copy.deepcopy(self._tables)
            try:
                async with asyncio.timeout(timeout_s):
                    yield InMemoryNovelTransaction(working)
            except TimeoutError as exc:
                raise PersistenceTimeoutError(timeout_s) from exc
            self._tables = working
