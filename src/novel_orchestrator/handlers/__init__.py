"""Task handlers keyed by task type."""

from collections.abc import Awaitable, Callable
from typing import Any

from novel_orchestrator.handlers.script_to_storyboard import handle_script_to_storyboard_task
from novel_orchestrator.handlers.story_to_script import handle_story_to_script_task
from novel_orchestrator.storage.models import SCRIPT_TO_STORYBOARD_RUN, STORY_TO_SCRIPT_RUN, TaskJob
from novel_orchestrator.worker.context import HandlerContext

TaskHandler = Callable[[TaskJob, HandlerContext], Awaitable[dict[str, Any]]]

TASK_HANDLERS: dict[str, TaskHandler] = {
    STORY_TO_SCRIPT_RUN: handle_story_to_script_task,
    SCRIPT_TO_STORYBOARD_RUN: handle_script_to_storyboard_task,
}

__all__ = [
    "TASK_HANDLERS",
    "TaskHandler",
    "handle_script_to_storyboard_task",
    "handle_story_to_script_task",
]
