from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

import pytest

from novel_orchestrator.config.model_config import StoreModelConfigResolver
from novel_orchestrator.config.settings import Settings
from novel_orchestrator.llm.client import ChatOptions
from novel_orchestrator.storage.memory import InMemoryNovelStore, InMemoryTaskQueue
from novel_orchestrator.storage.models import (
    Character,
    Episode,
    NewTask,
    NovelProject,
    Project,
    TaskJob,
)
from novel_orchestrator.worker.audit import RecordingAuditLogger
from novel_orchestrator.worker.context import HandlerContext
from novel_orchestrator.worker.progress import TaskChannel

PROJECT_ID = "project-1"
NOVEL_PROJECT_ID = "novel-project-1"
EPISODE_ID = "episode-1"
USER_ID = "user-1"
MODEL_KEY = "openai::gpt-4o-mini"

NOVEL_TEXT = (
    "Lin Yue runs to the harbor before midnight. She waits in the fog. "
    "The ship arrives at dawn. Lin Yue boards it without looking back."
)

_STORYBOARD_ID = re.compile(r'"storyboardId": "([0-9a-f-]+)"')

Responder = Callable[[ChatOptions, str], str]


class ScriptedLLM:
    """Answers each completion with ``responder(options, prompt)`` and records the call."""

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.calls: list[ChatOptions] = []
        self.prompts: list[str] = []

    async def chat_completion(
        self,
        user_id: str,
        model_key: str,
        messages: list[dict[str, str]],
        options: ChatOptions,
    ) -> dict[str, Any]:
        prompt = messages[-1]["content"]
        self.calls.append(options)
        self.prompts.append(prompt)
        text = self.responder(options, prompt)
        return {"choices": [{"message": {"role": "assistant", "content": text}}]}

    def step_ids(self) -> list[str]:
        return [str(call.step_id) for call in self.calls]


def story_response(options: ChatOptions, prompt: str) -> str:
    action = options.action
    if action == "analyze_characters":
        return json.dumps(
            {
                "characters": [
                    {
                        "name": "Lin Yue",
                        "aliases": ["Yue"],
                        "introduction": "A night courier",
                        "appearance": "short black hair, grey coat",
                        "age": "24",
                    }
                ]
            }
        )
    if action == "analyze_locations":
        return json.dumps(
            {"locations": [{"name": "Harbor", "summary": "Night docks", "descriptions": ["fog"]}]}
        )
    if action == "split_clips":
        return json.dumps(
            {
                "clips": [
                    {
                        "start": "Lin Yue runs",
                        "end": "waits in the fog.",
                        "summary": "Lin Yue waits at the harbor",
                        "location": "Harbor",
                        "characters": ["Lin Yue"],
                    },
                    {
                        "start": "The ship arrives",
                        "end": "without looking back.",
                        "summary": "Lin Yue leaves",
                        "location": "Harbor",
                        "characters": ["Lin Yue"],
                    },
                ]
            }
        )
    if action == "screenplay_conversion":
        return "```json\n" + json.dumps(
            {"scenes": [{"heading": "EXT. HARBOR - NIGHT", "content": [{"type": "action"}]}]}
        ) + "\n```"
    raise AssertionError(f"unexpected story action {action}")


def storyboard_response(options: ChatOptions, prompt: str) -> str:
    action = options.action
    if action == "storyboard_plan":
        return json.dumps(
            {
                "panels": [
                    {
                        "panel_number": 1,
                        "description": "Wide shot of the docks",
                        "characters": ["Lin Yue"],
                        "location": "Harbor",
                        "source_text": "Lin Yue runs to the harbor",
                    },
                    {
                        "panel_number": 2,
                        "description": "Close up on Lin Yue",
                        "characters": ["Lin Yue"],
                    },
                ]
            }
        )
    if action == "cinematography":
        return json.dumps(
            {"panels": [{"panel_number": 1, "composition": "rule of thirds", "lighting": "moonlight"}]}
        )
    if action == "acting_direction":
        return json.dumps(
            {"panels": [{"panel_number": 2, "characters": [{"name": "Lin Yue", "acting": "tense"}]}]}
        )
    if action == "storyboard_detail":
        return json.dumps(
            {
                "shot_type": "wide",
                "camera_move": "static",
                "description": "Lin Yue in the fog",
                "video_prompt": "fog rolls over the docks",
                "duration": 3,
            }
        )
    if action == "voice_analyze":
        storyboard_id = _STORYBOARD_ID.search(prompt).group(1)
        return json.dumps(
            [
                {
                    "lineIndex": 1,
                    "speaker": "Lin Yue",
                    "content": "It's late.",
                    "emotionStrength": 1.7,
                    "matchedPanel": {"storyboardId": storyboard_id, "panelIndex": 2},
                },
                {
                    "lineIndex": 2.6,
                    "speaker": "Narrator",
                    "content": "The ship arrived.",
                    "emotionStrength": 0.5,
                    "matchedPanel": None,
                },
            ]
        )
    raise AssertionError(f"unexpected storyboard action {action}")


@pytest.fixture
def settings() -> Settings:
    return Settings(persist_timeout_s=5.0, max_content_chars=30000, default_locale="en")


@pytest.fixture
def queue() -> InMemoryTaskQueue:
    return InMemoryTaskQueue()


@pytest.fixture
def store() -> InMemoryNovelStore:
    novel_store = InMemoryNovelStore()
    novel_store.put_project(Project(id=PROJECT_ID, name="Harbor Nights", mode="novel-promotion"))
    novel_store.put_novel_project(
        NovelProject(id=NOVEL_PROJECT_ID, project_id=PROJECT_ID, analysis_model=MODEL_KEY)
    )
    novel_store.put_episode(
        Episode(id=EPISODE_ID, novel_project_id=NOVEL_PROJECT_ID, name="Ep 1", novel_text=NOVEL_TEXT)
    )
    novel_store.put_character(
        Character(
            id="character-0",
            novel_project_id=NOVEL_PROJECT_ID,
            name="Old Chen",
            introduction="The harbor master",
        )
    )
    return novel_store


@pytest.fixture
def audit() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture
def make_context(
    queue: InMemoryTaskQueue,
    store: InMemoryNovelStore,
    audit: RecordingAuditLogger,
    settings: Settings,
) -> Callable[[ScriptedLLM], HandlerContext]:
    def _make(llm: ScriptedLLM) -> HandlerContext:
        return HandlerContext(
            store=store,
            channel=TaskChannel(queue),
            llm=llm,
            audit=audit,
            model_config=StoreModelConfigResolver(store),
            settings=settings,
        )

    return _make


async def claim_job(
    queue: InMemoryTaskQueue,
    task_type: str,
    payload: dict[str, Any] | None = None,
    *,
    locale: str = "en",
    episode_id: str | None = EPISODE_ID,
) -> TaskJob:
    """Enqueue one task and claim it so it is ``processing``."""
    await queue.enqueue(
        NewTask(
            type=task_type,
            project_id=PROJECT_ID,
            episode_id=episode_id,
            target_type="NovelPromotionEpisode",
            target_id=episode_id or "",
            payload=payload if payload is not None else {"episodeId": EPISODE_ID},
            user_id=USER_ID,
            locale=locale,
            dedupe_key=f"{task_type}:{episode_id}",
        )
    )
    job = await queue.claim()
    assert job is not None
    return job
