import pytest

from novel_orchestrator.errors import PromptTemplateError
from novel_orchestrator.prompts import (
    PromptId,
    build_prompt,
    fill_template,
    get_prompt_template,
    normalize_locale,
    resolve_task_locale,
)


def test_normalize_locale_maps_region_tags() -> None:
    assert normalize_locale("en-US") == "en"
    assert normalize_locale(" ZH ") == "zh"
    assert normalize_locale("fr") is None
    assert normalize_locale(None) is None


def test_resolve_task_locale_order() -> None:
    assert resolve_task_locale({"meta": {"locale": "en"}, "locale": "zh"}) == "en"
    assert resolve_task_locale({"locale": "zh-CN"}, {"x-app-locale": "en"}) == "zh"
    assert resolve_task_locale({}, {"x-app-locale": "en"}) == "en"
    assert resolve_task_locale({}, {"accept-language": "en-GB,en;q=0.9,zh;q=0.5"}) == "en"
    assert resolve_task_locale({}, {"accept-language": "fr-FR,en;q=0.9"}) is None
    assert resolve_task_locale(None) is None


def test_fill_template_single_pass() -> None:
    rendered = fill_template("A={a} B={b}", {"a": "{b}", "b": "x"})
    assert rendered == "A={b} B=x"


def test_fill_template_ignores_json_examples() -> None:
    template = 'Return {"name": "..."} for {input}'
    assert fill_template(template, {"input": "text"}) == 'Return {"name": "..."} for text'


def test_fill_template_missing_variable_raises() -> None:
    with pytest.raises(PromptTemplateError, match="clip_id"):
        fill_template("clip {clip_id}", {})


def test_every_prompt_exists_in_both_locales() -> None:
    prompt_ids = [
        value for name, value in vars(PromptId).items() if name.startswith("NP_")
    ]
    assert len(prompt_ids) == 9
    for prompt_id in prompt_ids:
        assert get_prompt_template(prompt_id, "zh")
        assert get_prompt_template(prompt_id, "en-US")


def test_unknown_prompt_or_locale_raises() -> None:
    with pytest.raises(PromptTemplateError):
        get_prompt_template("np_missing", "zh")
    with pytest.raises(PromptTemplateError):
        get_prompt_template(PromptId.NP_AGENT_CLIP, "fr")


def test_build_prompt_renders_voice_analysis() -> None:
    prompt = build_prompt(
        prompt_id=PromptId.NP_VOICE_ANALYSIS,
        locale="en",
        variables={
            "input": "NOVEL TEXT",
            "characters_lib_name": "Lin Yue",
            "characters_introduction": "- Lin Yue: courier",
            "storyboard_json": "[]",
        },
    )
    assert "NOVEL TEXT" in prompt
    assert "{input}" not in prompt
