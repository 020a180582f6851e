"""Audit trail for prompts and raw model output."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any, Protocol

AUDIT_LOGGER_NAME = "novel_orchestrator.audit"


class AuditLogger(Protocol):
    def log(
        self,
        *,
        user_id: str,
        project_id: str,
        project_name: str,
        action: str,
        model: str,
        data: dict[str, Any],
    ) -> None: ...


class LoggingAuditLogger:
    """One JSON document per entry; payloads are never truncated."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    def log(
        self,
        *,
        user_id: str,
        project_id: str,
        project_name: str,
        action: str,
        model: str,
        data: dict[str, Any],
    ) -> None:
        entry = {
            "ts": datetime.now(UTC).isoformat(),
            "user_id": user_id,
            "project_id": project_id,
            "project_name": project_name,
            "action": action,
            "model": model,
            **data,
        }
        self._logger.info(json.dumps(entry, ensure_ascii=False, default=str))


class RecordingAuditLogger:
    """Keeps entries in memory for tests."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    def log(
        self,
        *,
        user_id: str,
        project_id: str,
        project_name: str,
        action: str,
        model: str,
        data: dict[str, Any],
    ) -> None:
        self.entries.append(
            {
                "user_id": user_id,
                "project_id": project_id,
                "project_name": project_name,
                "action": action,
                "model": model,
                **data,
            }
        )

    def actions(self) -> list[str]:
        return [str(entry["action"]) for entry in self.entries]
