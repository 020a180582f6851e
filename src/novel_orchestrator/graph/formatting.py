"""Render library data into prompt variables."""

from __future__ import annotations

import json
from typing import Any

from novel_orchestrator.graph.types import CharacterInfo, LocationInfo

_NAME_SEPARATOR = {"zh": "、", "en": ", "}
_EMPTY_LABEL = {"zh": "无", "en": "none"}


def join_names(names: list[str], locale: str) -> str:
    cleaned = [name.strip() for name in names if name and name.strip()]
    if not cleaned:
        return _EMPTY_LABEL.get(locale, _EMPTY_LABEL["en"])
    return _NAME_SEPARATOR.get(locale, ", ").join(cleaned)


def format_introductions(characters: list[CharacterInfo], locale: str) -> str:
    lines = [
        f"- {item.name}: {item.introduction.strip()}"
        for item in characters
        if item.introduction.strip()
    ]
    return "\n".join(lines) or _EMPTY_LABEL.get(locale, _EMPTY_LABEL["en"])


def format_appearances(characters: list[CharacterInfo], locale: str) -> str:
    lines = [
        f"- {item.name}: {item.appearance.strip()}"
        for item in characters
        if item.appearance.strip()
    ]
    return "\n".join(lines) or _EMPTY_LABEL.get(locale, _EMPTY_LABEL["en"])


def format_characters_info(characters: list[CharacterInfo], locale: str) -> str:
    lines = []
    for item in characters:
        details = "; ".join(part for part in (item.introduction.strip(), item.appearance.strip()) if part)
        lines.append(f"- {item.name}: {details}" if details else f"- {item.name}")
    return "\n".join(lines) or _EMPTY_LABEL.get(locale, _EMPTY_LABEL["en"])


def format_locations(locations: list[LocationInfo], locale: str) -> str:
    lines = []
    for item in locations:
        parts = [item.summary.strip(), *[text.strip() for text in item.descriptions]]
        details = "; ".join(part for part in parts if part)
        lines.append(f"- {item.name}: {details}" if details else f"- {item.name}")
    return "\n".join(lines) or _EMPTY_LABEL.get(locale, _EMPTY_LABEL["en"])


def to_prompt_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2)
