from __future__ import annotations

import asyncio
import os
import uuid

import psycopg
import pytest

from conftest import NOVEL_TEXT, ScriptedLLM, story_response
from novel_orchestrator.config.model_config import StoreModelConfigResolver
from novel_orchestrator.config.settings import Settings
from novel_orchestrator.errors import PersistenceTimeoutError
from novel_orchestrator.handlers.story_to_script import handle_story_to_script_task
from novel_orchestrator.storage.models import STORY_TO_SCRIPT_RUN, NewClip, NewTask
from novel_orchestrator.storage.postgres import PostgresTaskQueue
from novel_orchestrator.storage.postgres_novel import PostgresNovelStore
from novel_orchestrator.worker.audit import RecordingAuditLogger
from novel_orchestrator.worker.context import HandlerContext
from novel_orchestrator.worker.progress import TaskChannel


@pytest.fixture
def database_url() -> str:
    if os.getenv("RUN_POSTGRES_INTEGRATION_TESTS") != "1":
        pytest.skip(
            "Set RUN_POSTGRES_INTEGRATION_TESTS=1 and NOVEL_ORCHESTRATOR_DATABASE_URL "
            "to run integration tests against PostgreSQL."
        )
    url = os.getenv("NOVEL_ORCHESTRATOR_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("NOVEL_ORCHESTRATOR_DATABASE_URL is required for integration tests.")
    return url


async def _seed(database_url: str, suffix: str) -> dict[str, str]:
    ids = {
        "project": f"project-{suffix}",
        "novel_project": f"novel-project-{suffix}",
        "episode": f"episode-{suffix}",
    }
    async with await psycopg.AsyncConnection.connect(database_url) as conn:
        await conn.execute(
            "INSERT INTO projects (id, name, mode) VALUES (%s, %s, %s)",
            (ids["project"], "Harbor Nights", "novel-promotion"),
        )
        await conn.execute(
            "INSERT INTO novel_projects (id, project_id, analysis_model) VALUES (%s, %s, %s)",
            (ids["novel_project"], ids["project"], "openai::gpt-4o-mini"),
        )
        await conn.execute(
            "INSERT INTO novel_episodes (id, novel_project_id, name, novel_text) VALUES (%s, %s, %s, %s)",
            (ids["episode"], ids["novel_project"], "Ep 1", NOVEL_TEXT),
        )
        await conn.commit()
    return ids


def test_story_to_script_roundtrip_on_postgres(database_url: str) -> None:
    suffix = uuid.uuid4().hex[:12]
    queue = PostgresTaskQueue(database_url)
    store = PostgresNovelStore(database_url)
    llm = ScriptedLLM(story_response)

    async def _scenario():
        await queue.migrate()
        await store.migrate()
        ids = await _seed(database_url, suffix)
        record = await queue.enqueue(
            NewTask(
                type=STORY_TO_SCRIPT_RUN,
                project_id=ids["project"],
                episode_id=ids["episode"],
                target_type="NovelPromotionEpisode",
                target_id=ids["episode"],
                payload={"episodeId": ids["episode"]},
                user_id=f"user-{suffix}",
                locale="en",
                dedupe_key=f"{STORY_TO_SCRIPT_RUN}:{ids['episode']}",
                priority=1000,
            )
        )
        job = await queue.claim()
        assert job is not None
        assert job.data.task_id == record.task_id
        context = HandlerContext(
            store=store,
            channel=TaskChannel(queue),
            llm=llm,
            audit=RecordingAuditLogger(),
            model_config=StoreModelConfigResolver(store),
            settings=Settings(persist_timeout_s=10.0),
        )
        result = await handle_story_to_script_task(job, context)
        await queue.complete(record.task_id, result)
        clips = await store.list_episode_clips(ids["episode"])
        task = await queue.get_task(record.task_id)
        return result, clips, task

    result, clips, task = asyncio.run(_scenario())
    assert result["persisted_clips"] == 2
    assert [clip.clip_key for clip in clips] == ["clip_1", "clip_2"]
    assert task.status == "completed"
    assert task.progress == 100


def test_postgres_transaction_rolls_back_on_error(database_url: str) -> None:
    suffix = uuid.uuid4().hex[:12]
    store = PostgresNovelStore(database_url)

    async def _scenario():
        await store.migrate()
        ids = await _seed(database_url, suffix)
        with pytest.raises(RuntimeError):
            async with store.transaction(5.0) as tx:
                await tx.replace_episode_clips(
                    ids["episode"], [NewClip(clip_key="clip_1", clip_index=1, content="text")]
                )
                raise RuntimeError("abort")
        return await store.list_episode_clips(ids["episode"])

    assert asyncio.run(_scenario()) == []


def test_postgres_transaction_timeout(database_url: str) -> None:
    store = PostgresNovelStore(database_url)

    async def _scenario() -> None:
        await store.migrate()
        with pytest.raises(PersistenceTimeoutError):
            async with store.transaction(0.2) as tx:
                await tx.get_episode("missing")
                await asyncio.sleep(1)

    asyncio.run(_scenario())


def test_postgres_queue_supersedes_by_dedupe_key(database_url: str) -> None:
    queue = PostgresTaskQueue(database_url)
    dedupe_key = f"{STORY_TO_SCRIPT_RUN}:episode-{uuid.uuid4().hex[:12]}"

    def _task() -> NewTask:
        return NewTask(
            type=STORY_TO_SCRIPT_RUN,
            project_id="project-x",
            target_type="NovelPromotionEpisode",
            target_id="episode-x",
            user_id="user-x",
            locale="zh",
            dedupe_key=dedupe_key,
        )

    async def _scenario():
        await queue.migrate()
        first = await queue.enqueue(_task())
        second = await queue.enqueue(_task())
        return await queue.get_task(first.task_id), await queue.get_task(second.task_id)

    old, new = asyncio.run(_scenario())
    assert old.status == "cancelled"
    assert old.error == "superseded"
    assert new.status == "queued"
