"""Locale-aware prompt templates and task locale resolution."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from novel_orchestrator.errors import PromptTemplateError
from novel_orchestrator.prompts import script_to_storyboard, story_to_script

SUPPORTED_LOCALES: tuple[str, ...] = ("zh", "en")

_PLACEHOLDER = re.compile(r"\{([a-z_]+)\}")


class PromptId:
    NP_AGENT_CHARACTER_PROFILE = "np_agent_character_profile"
    NP_SELECT_LOCATION = "np_select_location"
    NP_AGENT_CLIP = "np_agent_clip"
    NP_SCREENPLAY_CONVERSION = "np_screenplay_conversion"
    NP_AGENT_STORYBOARD_PLAN = "np_agent_storyboard_plan"
    NP_AGENT_CINEMATOGRAPHER = "np_agent_cinematographer"
    NP_AGENT_ACTING_DIRECTION = "np_agent_acting_direction"
    NP_AGENT_STORYBOARD_DETAIL = "np_agent_storyboard_detail"
    NP_VOICE_ANALYSIS = "np_voice_analysis"


_TEMPLATES: dict[str, dict[str, str]] = {
    PromptId.NP_AGENT_CHARACTER_PROFILE: story_to_script.CHARACTER_PROFILE,
    PromptId.NP_SELECT_LOCATION: story_to_script.SELECT_LOCATION,
    PromptId.NP_AGENT_CLIP: story_to_script.CLIP,
    PromptId.NP_SCREENPLAY_CONVERSION: story_to_script.SCREENPLAY_CONVERSION,
    PromptId.NP_AGENT_STORYBOARD_PLAN: script_to_storyboard.PANEL_PLAN,
    PromptId.NP_AGENT_CINEMATOGRAPHER: script_to_storyboard.CINEMATOGRAPHY,
    PromptId.NP_AGENT_ACTING_DIRECTION: script_to_storyboard.ACTING_DIRECTION,
    PromptId.NP_AGENT_STORYBOARD_DETAIL: script_to_storyboard.PANEL_DETAIL,
    PromptId.NP_VOICE_ANALYSIS: script_to_storyboard.VOICE_ANALYSIS,
}


def normalize_locale(raw: Any) -> str | None:
    """Map ``en-US`` style tags onto a supported locale, or ``None``."""
    if not isinstance(raw, str):
        return None
    normalized = raw.strip().lower()
    if not normalized:
        return None
    for locale in SUPPORTED_LOCALES:
        if normalized == locale or normalized.startswith(f"{locale}-"):
            return locale
    return None


def resolve_task_locale(
    body: Mapping[str, Any] | None,
    headers: Mapping[str, str] | None = None,
) -> str | None:
    """Read ``meta.locale``, ``locale``, then ``X-App-Locale`` and ``Accept-Language``."""
    payload = body if isinstance(body, Mapping) else {}
    meta = payload.get("meta")
    meta = meta if isinstance(meta, Mapping) else {}
    for candidate in (meta.get("locale"), payload.get("locale")):
        locale = normalize_locale(candidate)
        if locale:
            return locale

    if headers is None:
        return None
    app_locale = normalize_locale(headers.get("x-app-locale"))
    if app_locale:
        return app_locale
    accept_language = headers.get("accept-language") or ""
    first = accept_language.split(",")[0].split(";")[0].strip()
    return normalize_locale(first)


def get_prompt_template(prompt_id: str, locale: str) -> str:
    variants = _TEMPLATES.get(prompt_id)
    if variants is None:
        raise PromptTemplateError(f"Unknown prompt id: {prompt_id}")
    template = variants.get(normalize_locale(locale) or "")
    if template is None:
        raise PromptTemplateError(f"Prompt {prompt_id} has no template for locale {locale!r}")
    return template


def fill_template(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute ``{name}`` placeholders in one pass; substituted text is not rescanned."""

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables:
            raise PromptTemplateError(f"Prompt variable {name!r} was not provided")
        return str(variables[name])

    return _PLACEHOLDER.sub(_replace, template)


def build_prompt(*, prompt_id: str, locale: str, variables: Mapping[str, Any]) -> str:
    return fill_template(get_prompt_template(prompt_id, locale), variables)


__all__ = [
    "PromptId",
    "SUPPORTED_LOCALES",
    "build_prompt",
    "fill_template",
    "get_prompt_template",
    "normalize_locale",
    "resolve_task_locale",
]
