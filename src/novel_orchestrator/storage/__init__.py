"""Storage backends and models."""

from novel_orchestrator.storage.base import NovelStore, NovelWriteTransaction, TaskQueue
from novel_orchestrator.storage.memory import InMemoryNovelStore, InMemoryTaskQueue
from novel_orchestrator.storage.models import TaskJob, TaskJobData, TaskRecord
from novel_orchestrator.storage.postgres import PostgresTaskQueue
from novel_orchestrator.storage.postgres_novel import PostgresNovelStore

__all__ = [
    "InMemoryNovelStore",
    "InMemoryTaskQueue",
    "NovelStore",
    "NovelWriteTransaction",
    "PostgresNovelStore",
    "PostgresTaskQueue",
    "TaskJob",
    "TaskJobData",
    "TaskQueue",
    "TaskRecord",
]
