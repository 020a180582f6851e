import pytest

import novel_orchestrator.llm.client as client_module
from novel_orchestrator.errors import LLMRequestError
from novel_orchestrator.llm.client import (
    ChatOptions,
    OpenAICompatibleClient,
    build_request_body,
    get_completion_parts,
    parse_model_key,
)


def test_parse_model_key_splits_provider() -> None:
    assert parse_model_key("openai::gpt-4o-mini") == ("openai", "gpt-4o-mini")
    assert parse_model_key("gpt-4o-mini") == ("", "gpt-4o-mini")


def test_completion_parts_separates_think_blocks() -> None:
    completion = {
        "choices": [
            {
                "message": {
                    "content": "<think>weigh options</think>\n{\"ok\": true}",
                    "reasoning_content": "first thought",
                }
            }
        ]
    }
    parts = get_completion_parts(completion)
    assert parts.text == '{"ok": true}'
    assert parts.reasoning == "first thought\nweigh options"


def test_completion_parts_joins_content_segments() -> None:
    completion = {
        "choices": [{"message": {"content": [{"type": "text", "text": "ab"}, {"text": "cd"}, "x"]}}]
    }
    assert get_completion_parts(completion).text == "abcd"
    assert get_completion_parts({"choices": []}).text == ""


def test_request_body_omits_reasoning_when_disabled() -> None:
    messages = [{"role": "user", "content": "hi"}]
    body = build_request_body(
        model_id="gpt-4o-mini",
        messages=messages,
        options=ChatOptions(temperature=0.3, reasoning=False, max_output_tokens=100),
    )
    assert body == {
        "model": "gpt-4o-mini",
        "temperature": 0.3,
        "messages": messages,
        "max_tokens": 100,
    }

    body = build_request_body(
        model_id="gpt-4o-mini",
        messages=messages,
        options=ChatOptions(reasoning=True, reasoning_effort="low"),
    )
    assert body["reasoning_effort"] == "low"
    assert "max_tokens" not in body


def test_client_requires_api_key() -> None:
    with pytest.raises(RuntimeError):
        OpenAICompatibleClient(
            api_key="", base_url="http://localhost", timeout_s=1.0, max_retries=0, backoff_s=0.0
        )


def test_request_retries_then_surfaces_last_error(monkeypatch) -> None:
    calls: list[dict] = []

    def fake_request_once(**kwargs):
        calls.append(kwargs)
        raise LLMRequestError(f"boom {len(calls)}")

    monkeypatch.setattr(client_module, "_request_once", fake_request_once)

    with pytest.raises(LLMRequestError, match="boom 3"):
        client_module._request_with_retry(
            api_key="key",
            base_url="http://localhost",
            timeout_s=1.0,
            max_retries=2,
            backoff_s=0.0,
            request_body={"model": "m"},
        )
    assert len(calls) == 3
