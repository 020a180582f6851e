"""PostgreSQL-backed task queue with automatic table migration."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from typing import Any

from novel_orchestrator.storage.models import NewTask, TaskJob, TaskRecord


def load_psycopg() -> tuple[Any, Any, Any]:
    try:
        import psycopg
        from psycopg.rows import dict_row
        from psycopg.types.json import Json
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError(
            "PostgreSQL storage requires psycopg. "
            'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
        ) from exc
    return psycopg, dict_row, Json


def parse_json_optional(raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


def parse_datetime(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, str):
        return datetime.fromisoformat(raw)
    raise TypeError(f"Unsupported datetime value: {type(raw)!r}")


class PostgresTaskQueue:
    """Task queue rows claimed with ``FOR UPDATE SKIP LOCKED``."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("NOVEL_ORCHESTRATOR_DATABASE_URL is required")
        self.database_url = database_url
        self._psycopg, self._dict_row, self._json_wrapper = load_psycopg()

    async def migrate(self) -> None:
        async with await self._connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS novel_tasks (
                    job_id BIGSERIAL UNIQUE,
                    task_id UUID PRIMARY KEY,
                    type TEXT NOT NULL,
                    project_id TEXT NOT NULL,
                    episode_id TEXT,
                    target_type TEXT NOT NULL,
                    target_id TEXT NOT NULL,
                    payload_json JSONB NOT NULL DEFAULT '{}'::jsonb,
                    user_id TEXT NOT NULL,
                    locale TEXT NOT NULL,
                    dedupe_key TEXT,
                    priority INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL,
                    progress INTEGER NOT NULL DEFAULT 0,
                    progress_meta_json JSONB NOT NULL DEFAULT '{}'::jsonb,
                    result_json JSONB,
                    error TEXT,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL,
                    started_at TIMESTAMPTZ,
                    finished_at TIMESTAMPTZ
                )
                """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_novel_tasks_claim
                ON novel_tasks(status, priority DESC, job_id)
                """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_novel_tasks_dedupe_key
                ON novel_tasks(dedupe_key)
                WHERE dedupe_key IS NOT NULL
                """)
            await conn.commit()

    async def enqueue(self, task: NewTask) -> TaskRecord:
        task_id = uuid.uuid4()
        now = datetime.now(tz=UTC)
        async with await self._connect() as conn:
            if task.dedupe_key:
                await conn.execute(
                    """
                    UPDATE novel_tasks
                    SET status = 'cancelled',
                        error = 'superseded',
                        updated_at = %s,
                        finished_at = %s
                    WHERE dedupe_key = %s
                      AND status IN ('queued', 'processing')
                    """,
                    (now, now, task.dedupe_key),
                )
            cursor = await conn.execute(
                """
                INSERT INTO novel_tasks (
                    task_id,
                    type,
                    project_id,
                    episode_id,
                    target_type,
                    target_id,
                    payload_json,
                    user_id,
                    locale,
                    dedupe_key,
                    priority,
                    status,
                    created_at,
                    updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 'queued', %s, %s)
                RETURNING *
                """,
                (
                    task_id,
                    task.type,
                    task.project_id,
                    task.episode_id,
                    task.target_type,
                    task.target_id,
                    self._json_wrapper(task.payload),
                    task.user_id,
                    task.locale,
                    task.dedupe_key,
                    task.priority,
                    now,
                    now,
                ),
            )
            row = await cursor.fetchone()
            await conn.commit()
        if row is None:
            raise RuntimeError("Failed to load created task")
        return self._row_to_task(row)

    async def claim(self) -> TaskJob | None:
        now = datetime.now(tz=UTC)
        async with await self._connect() as conn:
            cursor = await conn.execute(
                """
                UPDATE novel_tasks
                SET status = 'processing',
                    started_at = %s,
                    updated_at = %s
                WHERE task_id = (
                    SELECT task_id
                    FROM novel_tasks
                    WHERE status = 'queued'
                    ORDER BY priority DESC, job_id ASC
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING *
                """,
                (now, now),
            )
            row = await cursor.fetchone()
            await conn.commit()
        if row is None:
            return None
        return self._row_to_task(row).to_job()

    async def get_task(self, task_id: str) -> TaskRecord | None:
        async with await self._connect() as conn:
            cursor = await conn.execute(
                "SELECT * FROM novel_tasks WHERE task_id::text = %s",
                (task_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def update_progress(self, task_id: str, progress: int, meta: dict[str, Any]) -> None:
        async with await self._connect() as conn:
            await conn.execute(
                """
                UPDATE novel_tasks
                SET progress = GREATEST(progress, %s),
                    progress_meta_json = %s,
                    updated_at = %s
                WHERE task_id::text = %s
                  AND status = 'processing'
                """,
                (progress, self._json_wrapper(meta), datetime.now(tz=UTC), task_id),
            )
            await conn.commit()

    async def complete(self, task_id: str, result: dict[str, Any]) -> None:
        now = datetime.now(tz=UTC)
        async with await self._connect() as conn:
            await conn.execute(
                """
                UPDATE novel_tasks
                SET status = 'completed',
                    progress = 100,
                    result_json = %s,
                    error = NULL,
                    updated_at = %s,
                    finished_at = %s
                WHERE task_id::text = %s
                  AND status = 'processing'
                """,
                (self._json_wrapper(result), now, now, task_id),
            )
            await conn.commit()

    async def fail(self, task_id: str, error: str) -> None:
        now = datetime.now(tz=UTC)
        async with await self._connect() as conn:
            await conn.execute(
                """
                UPDATE novel_tasks
                SET status = 'failed',
                    error = %s,
                    updated_at = %s,
                    finished_at = %s
                WHERE task_id::text = %s
                  AND status = 'processing'
                """,
                (error, now, now, task_id),
            )
            await conn.commit()

    async def cancel(self, task_id: str, reason: str = "cancelled") -> TaskRecord | None:
        now = datetime.now(tz=UTC)
        async with await self._connect() as conn:
            await conn.execute(
                """
                UPDATE novel_tasks
                SET status = 'cancelled',
                    error = %s,
                    updated_at = %s,
                    finished_at = %s
                WHERE task_id::text = %s
                  AND status IN ('queued', 'processing')
                """,
                (reason, now, now, task_id),
            )
            await conn.commit()
        return await self.get_task(task_id)

    async def _connect(self) -> Any:
        return await self._psycopg.AsyncConnection.connect(
            self.database_url, row_factory=self._dict_row
        )

    @staticmethod
    def _row_to_task(row: Any) -> TaskRecord:
        return TaskRecord(
            task_id=str(row["task_id"]),
            job_id=str(row["job_id"]),
            type=row["type"],
            project_id=row["project_id"],
            episode_id=row["episode_id"],
            target_type=row["target_type"],
            target_id=row["target_id"],
            payload=parse_json_optional(row["payload_json"]) or {},
            user_id=row["user_id"],
            locale=row["locale"],
            dedupe_key=row["dedupe_key"],
            priority=int(row["priority"]),
            status=row["status"],
            progress=int(row["progress"]),
            progress_meta=parse_json_optional(row["progress_meta_json"]) or {},
            result=parse_json_optional(row["result_json"]),
            error=row["error"],
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
            started_at=parse_datetime(row["started_at"]) if row["started_at"] else None,
            finished_at=parse_datetime(row["finished_at"]) if row["finished_at"] else None,
        )
