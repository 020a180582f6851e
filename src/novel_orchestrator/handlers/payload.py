"""Validated accessors for the free-form job payload."""

from __future__ import annotations

import math
from typing import Any, Literal

from novel_orchestrator.errors import InvalidPayloadError, TaskValidationError
from novel_orchestrator.storage.models import TaskJobData

ReasoningEffort = Literal["minimal", "low", "medium", "high"]
REASONING_EFFORTS: tuple[str, ...] = ("minimal", "low", "medium", "high")
DEFAULT_TEMPERATURE = 0.7


def payload_str(payload: dict[str, Any], field: str) -> str:
    """Return the stripped string at ``field``; absent or null reads as ``""``."""
    value = payload.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidPayloadError(field, "a string")
    return value.strip()


def payload_object(payload: dict[str, Any], field: str) -> dict[str, Any]:
    value = payload.get(field)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidPayloadError(field, "an object")
    return value


def is_reasoning_effort(value: Any) -> bool:
    return isinstance(value, str) and value in REASONING_EFFORTS


def parse_reasoning_effort(payload: dict[str, Any]) -> ReasoningEffort | None:
    value = payload.get("reasoningEffort")
    if value is None or value == "":
        return None
    if not is_reasoning_effort(value):
        raise InvalidPayloadError("reasoningEffort", "one of " + ", ".join(REASONING_EFFORTS))
    return value


def parse_temperature(payload: dict[str, Any]) -> float:
    value = payload.get("temperature")
    if value is None:
        return DEFAULT_TEMPERATURE
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidPayloadError("temperature", "a finite number")
    return min(2.0, max(0.0, float(value)))


def parse_reasoning_flag(payload: dict[str, Any]) -> bool:
    # Only an explicit false disables reasoning.
    return payload.get("reasoning") is not False


def resolve_episode_id(job: TaskJobData) -> str:
    episode_id = payload_str(job.payload, "episodeId") or (job.episode_id or "").strip()
    if not episode_id:
        raise TaskValidationError("episodeId is required")
    return episode_id
