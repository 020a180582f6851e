"""Tolerant JSON extraction from model output."""

from __future__ import annotations

import json
import re
from typing import Any

from novel_orchestrator.errors import JsonParseError

_CODE_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def parse_json_payload(text: str) -> Any:
    """Parse the first JSON object or array found in ``text``.

    Markdown code fences are unwrapped first; leading prose is skipped.
    """
    raw_text = text or ""
    candidate = raw_text.strip()
    fenced = _CODE_FENCE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    if not candidate:
        raise JsonParseError("Model returned empty output", raw_text)

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    for index, char in enumerate(candidate):
        if char not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(candidate, index)
        except json.JSONDecodeError:
            continue
        return value
    raise JsonParseError("Model output did not contain valid JSON", raw_text)


def expect_object(value: Any, raw_text: str, *, context: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise JsonParseError(f"{context}: expected a JSON object", raw_text)
    return value


def expect_list(value: Any, raw_text: str, *, context: str, key: str | None = None) -> list[Any]:
    """Accept a bare array or, when ``key`` is given, an object wrapping one."""
    if key is not None and isinstance(value, dict) and isinstance(value.get(key), list):
        return value[key]
    if not isinstance(value, list):
        raise JsonParseError(f"{context}: expected a JSON array", raw_text)
    return value


def require_text(item: dict[str, Any], field: str, raw_text: str, *, context: str) -> str:
    value = item.get(field)
    if not isinstance(value, str) or not value.strip():
        raise JsonParseError(f"{context}: missing required field {field!r}", raw_text)
    return value.strip()


def optional_text(item: dict[str, Any], field: str) -> str:
    value = item.get(field)
    return value.strip() if isinstance(value, str) else ""


def text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def require_panel_number(item: dict[str, Any], raw_text: str, *, context: str) -> int:
    value = item.get("panel_number")
    if isinstance(value, bool):
        raise JsonParseError(f"{context}: panel_number must be an integer", raw_text)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value <= 0:
        raise JsonParseError(f"{context}: panel_number must be a positive integer", raw_text)
    return value
