"""Model selection: project config first, then user preference."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from novel_orchestrator.storage.base import NovelStore

# Generation options each model type accepts from capability overrides.
CAPABILITY_OPTION_KEYS: dict[str, tuple[str, ...]] = {
    "llm": ("reasoning_effort",),
}


@dataclass(frozen=True)
class ProjectModelConfig:
    analysis_model: str | None


class ModelConfigResolver(Protocol):
    async def get_project_model_config(
        self, project_id: str, user_id: str
    ) -> ProjectModelConfig: ...

    async def resolve_capability_generation_options(
        self,
        *,
        project_id: str,
        user_id: str,
        model_type: str,
        model_key: str,
    ) -> dict[str, Any]: ...


class StoreModelConfigResolver:
    def __init__(self, store: NovelStore) -> None:
        self._store = store

    async def get_project_model_config(self, project_id: str, user_id: str) -> ProjectModelConfig:
        novel_project = await self._store.get_novel_project(project_id)
        if novel_project is not None and (novel_project.analysis_model or "").strip():
            return ProjectModelConfig(analysis_model=novel_project.analysis_model.strip())
        preference = await self._store.get_user_preference(user_id)
        if preference is not None and (preference.analysis_model or "").strip():
            return ProjectModelConfig(analysis_model=preference.analysis_model.strip())
        return ProjectModelConfig(analysis_model=None)

    async def resolve_capability_generation_options(
        self,
        *,
        project_id: str,
        user_id: str,
        model_type: str,
        model_key: str,
    ) -> dict[str, Any]:
        allowed = CAPABILITY_OPTION_KEYS.get(model_type, ())
        merged: dict[str, Any] = {}
        preference = await self._store.get_user_preference(user_id)
        if preference is not None:
            merged.update(preference.capability_overrides.get(model_key, {}))
        novel_project = await self._store.get_novel_project(project_id)
        if novel_project is not None:
            merged.update(novel_project.capability_overrides.get(model_key, {}))
        return {key: value for key, value in merged.items() if key in allowed}
