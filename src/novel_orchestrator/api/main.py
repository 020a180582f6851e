"""FastAPI app: enqueue pipeline tasks, read status, cancel."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from novel_orchestrator.config.settings import Settings, get_settings
from novel_orchestrator.prompts import resolve_task_locale
from novel_orchestrator.storage.base import NovelStore, TaskQueue
from novel_orchestrator.storage.models import (
    SCRIPT_TO_STORYBOARD_RUN,
    STORY_TO_SCRIPT_RUN,
    NewTask,
    TaskRecord,
)
from novel_orchestrator.storage.postgres import PostgresTaskQueue
from novel_orchestrator.storage.postgres_novel import PostgresNovelStore

EPISODE_TARGET_TYPE = "NovelPromotionEpisode"


class EnqueueRequest(BaseModel):
    """Task payload; unknown keys are kept and handed to the handler."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    episode_id: str = Field(alias="episodeId", min_length=1)
    content: str | None = None
    model: str | None = None
    reasoning: bool | None = None
    reasoning_effort: str | None = Field(default=None, alias="reasoningEffort")
    temperature: float | None = None
    locale: str | None = None
    meta: dict[str, Any] | None = None


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    queue_override: TaskQueue | None,
    store_override: NovelStore | None,
) -> None:
    if not hasattr(app.state, "queue"):
        database_url = settings.resolved_database_url()
        if (queue_override is None or store_override is None) and not database_url:
            raise RuntimeError(
                "Missing database URL. Set NOVEL_ORCHESTRATOR_DATABASE_URL "
                "or DATABASE_URL before starting the app."
            )
        app.state.queue = queue_override or PostgresTaskQueue(database_url)
        app.state.store = store_override or PostgresNovelStore(database_url)

    if not hasattr(app.state, "settings"):
        app.state.settings = settings


def create_app(
    *,
    queue: TaskQueue | None = None,
    store: NovelStore | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    overridden = queue is not None and store is not None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(
            app, settings=settings, queue_override=queue, store_override=store
        )
        await app.state.queue.migrate()
        await app.state.store.migrate()
        yield

    app = FastAPI(title=settings.app_name, lifespan=None if overridden else lifespan)

    if overridden:
        _ensure_runtime_state(
            app, settings=settings, queue_override=queue, store_override=store
        )

    def _get_queue(request: Request) -> TaskQueue:
        if not hasattr(request.app.state, "queue"):
            _ensure_runtime_state(
                request.app, settings=settings, queue_override=queue, store_override=store
            )
        return request.app.state.queue

    def _get_store(request: Request) -> NovelStore:
        if not hasattr(request.app.state, "store"):
            _ensure_runtime_state(
                request.app, settings=settings, queue_override=queue, store_override=store
            )
        return request.app.state.store

    async def _enqueue(
        task_type: str,
        project_id: str,
        body: EnqueueRequest,
        request: Request,
        user_id: str | None,
    ) -> TaskRecord:
        if not user_id or not user_id.strip():
            raise HTTPException(status_code=401, detail="X-User-Id header is required")
        project = await _get_store(request).get_project(project_id)
        if project is None:
            raise HTTPException(status_code=404, detail="Project not found")

        payload = body.model_dump(by_alias=True, exclude_none=True)
        episode_id = body.episode_id.strip()
        locale = resolve_task_locale(payload, request.headers) or settings.default_locale
        return await _get_queue(request).enqueue(
            NewTask(
                type=task_type,
                project_id=project_id,
                episode_id=episode_id,
                target_type=EPISODE_TARGET_TYPE,
                target_id=episode_id,
                payload=payload,
                user_id=user_id.strip(),
                locale=locale,
                dedupe_key=f"{task_type}:{episode_id}",
            )
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.post("/projects/{project_id}/story-to-script", response_model=TaskRecord, status_code=202)
    async def enqueue_story_to_script(
        project_id: str,
        body: EnqueueRequest,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> TaskRecord:
        return await _enqueue(STORY_TO_SCRIPT_RUN, project_id, body, request, x_user_id)

    @app.post(
        "/projects/{project_id}/script-to-storyboard", response_model=TaskRecord, status_code=202
    )
    async def enqueue_script_to_storyboard(
        project_id: str,
        body: EnqueueRequest,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> TaskRecord:
        return await _enqueue(SCRIPT_TO_STORYBOARD_RUN, project_id, body, request, x_user_id)

    @app.get("/tasks/{task_id}", response_model=TaskRecord)
    async def get_task(task_id: str, request: Request) -> TaskRecord:
        record = await _get_queue(request).get_task(task_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return record

    @app.post("/tasks/{task_id}/cancel", response_model=TaskRecord)
    async def cancel_task(task_id: str, request: Request) -> TaskRecord:
        record = await _get_queue(request).cancel(task_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return record

    return app


# Module-level app for `uvicorn novel_orchestrator.api.main:app`.
app = create_app()
