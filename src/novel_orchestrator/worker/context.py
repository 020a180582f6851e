"""Collaborators shared by every task handler."""

from __future__ import annotations

from dataclasses import dataclass

from novel_orchestrator.config.model_config import ModelConfigResolver
from novel_orchestrator.config.settings import Settings
from novel_orchestrator.llm.client import LLMClient
from novel_orchestrator.storage.base import NovelStore
from novel_orchestrator.worker.audit import AuditLogger
from novel_orchestrator.worker.progress import TaskChannel


@dataclass(frozen=True)
class HandlerContext:
    store: NovelStore
    channel: TaskChannel
    llm: LLMClient
    audit: AuditLogger
    model_config: ModelConfigResolver
    settings: Settings
