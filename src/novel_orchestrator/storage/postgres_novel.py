"""PostgreSQL-backed novel-promotion store."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from novel_orchestrator.errors import PersistenceTimeoutError
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
    NewVoiceLine,
    NovelProject,
    Panel,
    Project,
    Storyboard,
    UserPreference,
    VoiceLine,
)
from novel_orchestrator.storage.postgres import load_psycopg, parse_datetime, parse_json_optional

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        mode TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS novel_projects (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL UNIQUE REFERENCES projects(id) ON DELETE CASCADE,
        analysis_model TEXT,
        capability_overrides_json JSONB NOT NULL DEFAULT '{}'::jsonb
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_preferences (
        user_id TEXT PRIMARY KEY,
        analysis_model TEXT,
        capability_overrides_json JSONB NOT NULL DEFAULT '{}'::jsonb
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS novel_episodes (
        id TEXT PRIMARY KEY,
        novel_project_id TEXT NOT NULL REFERENCES novel_projects(id) ON DELETE CASCADE,
        name TEXT NOT NULL DEFAULT '',
        novel_text TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS novel_characters (
        id TEXT PRIMARY KEY,
        novel_project_id TEXT NOT NULL REFERENCES novel_projects(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        aliases_json JSONB NOT NULL DEFAULT '[]'::jsonb,
        introduction TEXT NOT NULL DEFAULT '',
        appearance TEXT NOT NULL DEFAULT '',
        profile_json JSONB
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS novel_locations (
        id TEXT PRIMARY KEY,
        novel_project_id TEXT NOT NULL REFERENCES novel_projects(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        summary TEXT NOT NULL DEFAULT '',
        descriptions_json JSONB NOT NULL DEFAULT '[]'::jsonb
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS novel_clips (
        id TEXT PRIMARY KEY,
        episode_id TEXT NOT NULL REFERENCES novel_episodes(id) ON DELETE CASCADE,
        clip_key TEXT NOT NULL,
        clip_index INTEGER NOT NULL,
        content TEXT NOT NULL,
        summary TEXT NOT NULL DEFAULT '',
        location TEXT,
        characters_json JSONB NOT NULL DEFAULT '[]'::jsonb,
        start_text TEXT NOT NULL DEFAULT '',
        end_text TEXT NOT NULL DEFAULT '',
        screenplay TEXT,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS novel_storyboards (
        id TEXT PRIMARY KEY,
        episode_id TEXT NOT NULL REFERENCES novel_episodes(id) ON DELETE CASCADE,
        clip_id TEXT NOT NULL REFERENCES novel_clips(id) ON DELETE CASCADE,
        panel_count INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS novel_panels (
        id TEXT PRIMARY KEY,
        storyboard_id TEXT NOT NULL REFERENCES novel_storyboards(id) ON DELETE CASCADE,
        panel_index INTEGER NOT NULL,
        panel_number INTEGER NOT NULL,
        shot_type TEXT NOT NULL DEFAULT '',
        camera_move TEXT NOT NULL DEFAULT '',
        description TEXT NOT NULL,
        video_prompt TEXT NOT NULL DEFAULT '',
        location TEXT,
        characters_json JSONB NOT NULL DEFAULT '[]'::jsonb,
        source_text TEXT NOT NULL DEFAULT '',
        duration DOUBLE PRECISION,
        photography_rules_json JSONB,
        acting_notes_json JSONB,
        UNIQUE (storyboard_id, panel_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS novel_voice_lines (
        id TEXT PRIMARY KEY,
        episode_id TEXT NOT NULL REFERENCES novel_episodes(id) ON DELETE CASCADE,
        line_index INTEGER NOT NULL,
        speaker TEXT NOT NULL,
        content TEXT NOT NULL,
        emotion_strength DOUBLE PRECISION NOT NULL,
        matched_panel_id TEXT REFERENCES novel_panels(id) ON DELETE SET NULL,
        matched_storyboard_id TEXT,
        matched_panel_index INTEGER
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_novel_clips_episode_id
    ON novel_clips(episode_id, clip_index)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_novel_voice_lines_episode_id
    ON novel_voice_lines(episode_id, line_index)
    """,
)


def _row_to_episode(row: Any) -> Episode:
    return Episode(
        id=row["id"],
        novel_project_id=row["novel_project_id"],
        name=row["name"],
        novel_text=row["novel_text"],
    )


def _row_to_character(row: Any) -> Character:
    return Character(
        id=row["id"],
        novel_project_id=row["novel_project_id"],
        name=row["name"],
        aliases=parse_json_optional(row["aliases_json"]) or [],
        introduction=row["introduction"],
        appearance=row["appearance"],
        profile=parse_json_optional(row["profile_json"]),
    )


def _row_to_location(row: Any) -> Location:
    return Location(
        id=row["id"],
        novel_project_id=row["novel_project_id"],
        name=row["name"],
        summary=row["summary"],
        descriptions=parse_json_optional(row["descriptions_json"]) or [],
    )


def _row_to_clip(row: Any) -> Clip:
    return Clip(
        id=row["id"],
        episode_id=row["episode_id"],
        clip_key=row["clip_key"],
        clip_index=int(row["clip_index"]),
        content=row["content"],
        summary=row["summary"],
        location=row["location"],
        characters=parse_json_optional(row["characters_json"]) or [],
        start_text=row["start_text"],
        end_text=row["end_text"],
        screenplay=row["screenplay"],
        created_at=parse_datetime(row["created_at"]),
    )


def _row_to_panel(row: Any) -> Panel:
    return Panel(
        id=row["id"],
        storyboard_id=row["storyboard_id"],
        panel_index=int(row["panel_index"]),
        panel_number=int(row["panel_number"]),
        shot_type=row["shot_type"],
        camera_move=row["camera_move"],
        description=row["description"],
        video_prompt=row["video_prompt"],
        location=row["location"],
        characters=parse_json_optional(row["characters_json"]) or [],
        source_text=row["source_text"],
        duration=row["duration"],
        photography_rules=parse_json_optional(row["photography_rules_json"]),
        acting_notes=parse_json_optional(row["acting_notes_json"]),
    )


def _row_to_voice_line(row: Any) -> VoiceLine:
    return VoiceLine(
        id=row["id"],
        episode_id=row["episode_id"],
        line_index=int(row["line_index"]),
        speaker=row["speaker"],
        content=row["content"],
        emotion_strength=float(row["emotion_strength"]),
        matched_panel_id=row["matched_panel_id"],
        matched_storyboard_id=row["matched_storyboard_id"],
        matched_panel_index=row["matched_panel_index"],
    )


class PostgresNovelTransaction:
    """Writes bound to one open connection inside ``conn.transaction()``."""

    def __init__(self, conn: Any, json_wrapper: Any) -> None:
        self._conn = conn
        self._json = json_wrapper

    async def get_episode(self, episode_id: str) -> Episode | None:
        cursor = await self._conn.execute(
            "SELECT * FROM novel_episodes WHERE id = %s FOR SHARE",
            (episode_id,),
        )
        row = await cursor.fetchone()
        return _row_to_episode(row) if row else None

    async def get_clip(self, clip_id: str) -> Clip | None:
        cursor = await self._conn.execute(
            "SELECT * FROM novel_clips WHERE id = %s FOR SHARE",
            (clip_id,),
        )
        row = await cursor.fetchone()
        return _row_to_clip(row) if row else None

    async def add_characters(
        self, novel_project_id: str, items: list[NewCharacter]
    ) -> list[Character]:
        known = await self._existing_names("novel_characters", novel_project_id)
        created: list[Character] = []
        for item in items:
            if item.name.lower() in known:
                continue
            known.add(item.name.lower())
            record = Character(id=str(uuid.uuid4()), novel_project_id=novel_project_id, **item.model_dump())
            await self._conn.execute(
                """
                INSERT INTO novel_characters (
                    id, novel_project_id, name, aliases_json, introduction, appearance, profile_json
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    record.id,
                    novel_project_id,
                    record.name,
                    self._json(record.aliases),
                    record.introduction,
                    record.appearance,
                    self._json(record.profile) if record.profile is not None else None,
                ),
            )
            created.append(record)
        return created

    async def add_locations(
        self, novel_project_id: str, items: list[NewLocation]
    ) -> list[Location]:
        known = await self._existing_names("novel_locations", novel_project_id)
        created: list[Location] = []
        for item in items:
            if item.name.lower() in known:
                continue
            known.add(item.name.lower())
            record = Location(id=str(uuid.uuid4()), novel_project_id=novel_project_id, **item.model_dump())
            await self._conn.execute(
                """
                INSERT INTO novel_locations (id, novel_project_id, name, summary, descriptions_json)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (
                    record.id,
                    novel_project_id,
                    record.name,
                    record.summary,
                    self._json(record.descriptions),
                ),
            )
            created.append(record)
        return created

    async def replace_episode_clips(self, episode_id: str, clips: list[NewClip]) -> list[Clip]:
        await self._conn.execute("DELETE FROM novel_clips WHERE episode_id = %s", (episode_id,))
        now = datetime.now(tz=UTC)
        created: list[Clip] = []
        for item in clips:
            record = Clip(id=str(uuid.uuid4()), episode_id=episode_id, created_at=now, **item.model_dump())
            await self._conn.execute(
                """
                INSERT INTO novel_clips (
                    id, episode_id, clip_key, clip_index, content, summary, location,
                    characters_json, start_text, end_text, screenplay, created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    record.id,
                    episode_id,
                    record.clip_key,
                    record.clip_index,
                    record.content,
                    record.summary,
                    record.location,
                    self._json(record.characters),
                    record.start_text,
                    record.end_text,
                    record.screenplay,
                    now,
                ),
            )
            created.append(record)
        return created

    async def replace_clip_storyboards(
        self, episode_id: str, storyboards: list[NewStoryboard]
    ) -> list[CreatedStoryboard]:
        clip_ids = [item.clip_id for item in storyboards]
        if clip_ids:
            await self._conn.execute(
                "DELETE FROM novel_storyboards WHERE clip_id = ANY(%s)",
                (clip_ids,),
            )
        created: list[CreatedStoryboard] = []
        for item in storyboards:
            storyboard = Storyboard(
                id=item.storyboard_id,
                episode_id=episode_id,
                clip_id=item.clip_id,
                panel_count=len(item.panels),
            )
            await self._conn.execute(
                """
                INSERT INTO novel_storyboards (id, episode_id, clip_id, panel_count)
                VALUES (%s, %s, %s, %s)
                """,
                (storyboard.id, episode_id, storyboard.clip_id, storyboard.panel_count),
            )
            panels: list[Panel] = []
            for draft in item.panels:
                panel = Panel(id=str(uuid.uuid4()), storyboard_id=storyboard.id, **draft.model_dump())
                await self._conn.execute(
                    """
                    INSERT INTO novel_panels (
                        id, storyboard_id, panel_index, panel_number, shot_type, camera_move,
                        description, video_prompt, location, characters_json, source_text,
                        duration, photography_rules_json, acting_notes_json
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        panel.id,
                        storyboard.id,
                        panel.panel_index,
                        panel.panel_number,
                        panel.shot_type,
                        panel.camera_move,
                        panel.description,
                        panel.video_prompt,
                        panel.location,
                        self._json(panel.characters),
                        panel.source_text,
                        panel.duration,
                        (
                            self._json(panel.photography_rules)
                            if panel.photography_rules is not None
                            else None
                        ),
                        self._json(panel.acting_notes) if panel.acting_notes is not None else None,
                    ),
                )
                panels.append(panel)
            created.append(CreatedStoryboard(storyboard=storyboard, panels=panels))
        return created

    async def replace_episode_voice_lines(
        self, episode_id: str, lines: list[NewVoiceLine]
    ) -> list[VoiceLine]:
        await self._conn.execute(
            "DELETE FROM novel_voice_lines WHERE episode_id = %s", (episode_id,)
        )
        created: list[VoiceLine] = []
        for item in lines:
            record = VoiceLine(id=str(uuid.uuid4()), episode_id=episode_id, **item.model_dump())
            await self._conn.execute(
                """
                INSERT INTO novel_voice_lines (
                    id, episode_id, line_index, speaker, content, emotion_strength,
                    matched_panel_id, matched_storyboard_id, matched_panel_index
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    record.id,
                    episode_id,
                    record.line_index,
                    record.speaker,
                    record.content,
                    record.emotion_strength,
                    record.matched_panel_id,
                    record.matched_storyboard_id,
                    record.matched_panel_index,
                ),
            )
            created.append(record)
        return created

    async def _existing_names(self, table: str, novel_project_id: str) -> set[str]:
        # table is one of two literals chosen above, never user input
        cursor = await self._conn.execute(
            f"SELECT name FROM {table} WHERE novel_project_id = %s",
            (novel_project_id,),
        )
        rows = await cursor.fetchall()
        return {str(row["name"]).lower() for row in rows}


class PostgresNovelStore:
    """Read novel-promotion data and run bounded write transactions."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("NOVEL_ORCHESTRATOR_DATABASE_URL is required")
        self.database_url = database_url
        self._psycopg, self._dict_row, self._json_wrapper = load_psycopg()

    async def migrate(self) -> None:
        async with await self._connect() as conn:
            for statement in _SCHEMA:
                await conn.execute(statement)
            await conn.commit()

    async def get_project(self, project_id: str) -> Project | None:
        row = await self._fetch_one("SELECT * FROM projects WHERE id = %s", (project_id,))
        if row is None:
            return None
        return Project(id=row["id"], name=row["name"], mode=row["mode"])

    async def get_novel_project(self, project_id: str) -> NovelProject | None:
        row = await self._fetch_one(
            "SELECT * FROM novel_projects WHERE project_id = %s", (project_id,)
        )
        if row is None:
            return None
        return NovelProject(
            id=row["id"],
            project_id=row["project_id"],
            analysis_model=row["analysis_model"],
            capability_overrides=parse_json_optional(row["capability_overrides_json"]) or {},
        )

    async def get_user_preference(self, user_id: str) -> UserPreference | None:
        row = await self._fetch_one(
            "SELECT * FROM user_preferences WHERE user_id = %s", (user_id,)
        )
        if row is None:
            return None
        return UserPreference(
            user_id=row["user_id"],
            analysis_model=row["analysis_model"],
            capability_overrides=parse_json_optional(row["capability_overrides_json"]) or {},
        )

    async def get_episode(self, episode_id: str) -> Episode | None:
        row = await self._fetch_one("SELECT * FROM novel_episodes WHERE id = %s", (episode_id,))
        return _row_to_episode(row) if row else None

    async def list_characters(self, novel_project_id: str) -> list[Character]:
        rows = await self._fetch_all(
            "SELECT * FROM novel_characters WHERE novel_project_id = %s ORDER BY name",
            (novel_project_id,),
        )
        return [_row_to_character(row) for row in rows]

    async def list_locations(self, novel_project_id: str) -> list[Location]:
        rows = await self._fetch_all(
            "SELECT * FROM novel_locations WHERE novel_project_id = %s ORDER BY name",
            (novel_project_id,),
        )
        return [_row_to_location(row) for row in rows]

    async def list_episode_clips(self, episode_id: str) -> list[Clip]:
        rows = await self._fetch_all(
            "SELECT * FROM novel_clips WHERE episode_id = %s ORDER BY clip_index, created_at",
            (episode_id,),
        )
        return [_row_to_clip(row) for row in rows]

    async def list_episode_storyboards(self, episode_id: str) -> list[Storyboard]:
        rows = await self._fetch_all(
            "SELECT * FROM novel_storyboards WHERE episode_id = %s", (episode_id,)
        )
        return [
            Storyboard(
                id=row["id"],
                episode_id=row["episode_id"],
                clip_id=row["clip_id"],
                panel_count=int(row["panel_count"]),
            )
            for row in rows
        ]

    async def list_storyboard_panels(self, storyboard_id: str) -> list[Panel]:
        rows = await self._fetch_all(
            "SELECT * FROM novel_panels WHERE storyboard_id = %s ORDER BY panel_index",
            (storyboard_id,),
        )
        return [_row_to_panel(row) for row in rows]

    async def list_episode_voice_lines(self, episode_id: str) -> list[VoiceLine]:
        rows = await self._fetch_all(
            "SELECT * FROM novel_voice_lines WHERE episode_id = %s ORDER BY line_index",
            (episode_id,),
        )
        return [_row_to_voice_line(row) for row in rows]

    @asynccontextmanager
    async def transaction(self, timeout_s: float) -> AsyncIterator[PostgresNovelTransaction]:
        try:
            async with asyncio.timeout(timeout_s):
                async with await self._connect() as conn:
                    async with conn.transaction():
                        await conn.execute(
                            f"SET LOCAL statement_timeout = {int(timeout_s * 1000)}"
                        )
                        yield PostgresNovelTransaction(conn, self._json_wrapper)
        except TimeoutError as exc:
            raise PersistenceTimeoutError(timeout_s) from exc
        except self._psycopg.errors.QueryCanceled as exc:
            raise PersistenceTimeoutError(timeout_s) from exc

    async def _fetch_one(self, query: str, params: tuple[Any, ...]) -> Any:
        async with await self._connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    async def _fetch_all(self, query: str, params: tuple[Any, ...]) -> list[Any]:
        async with await self._connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def _connect(self) -> Any:
        return await self._psycopg.AsyncConnection.connect(
            self.database_url, row_factory=self._dict_row
        )
