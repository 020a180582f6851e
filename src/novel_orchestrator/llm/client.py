"""Chat-completion port and an OpenAI-compatible HTTP adapter."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Protocol
from urllib import error, request

from novel_orchestrator.errors import LLMRequestError

logger = logging.getLogger(__name__)

MODEL_KEY_SEPARATOR = "::"
_THINK_BLOCK = re.compile(r"<think>(.*?)</think>", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ChatOptions:
    temperature: float = 0.7
    reasoning: bool = True
    reasoning_effort: str = "high"
    max_output_tokens: int | None = None
    project_id: str | None = None
    action: str | None = None
    step_id: str | None = None
    step_attempt: int = 1
    step_title: str | None = None
    step_index: int | None = None
    step_total: int | None = None


@dataclass(frozen=True)
class CompletionParts:
    text: str
    reasoning: str


class LLMClient(Protocol):
    async def chat_completion(
        self,
        user_id: str,
        model_key: str,
        messages: list[dict[str, str]],
        options: ChatOptions,
    ) -> dict[str, Any]: ...


def parse_model_key(model_key: str) -> tuple[str, str]:
    """Split ``provider::model_id``; a bare id has an empty provider."""
    provider, separator, model_id = model_key.partition(MODEL_KEY_SEPARATOR)
    if not separator:
        return "", model_key.strip()
    return provider.strip(), model_id.strip()


def get_completion_parts(completion: dict[str, Any]) -> CompletionParts:
    choices = completion.get("choices") or []
    if not choices:
        return CompletionParts(text="", reasoning="")
    message = choices[0].get("message") or {}

    content = message.get("content")
    if isinstance(content, str):
        text = content
    elif isinstance(content, list):
        text = "".join(
            item["text"]
            for item in content
            if isinstance(item, dict) and isinstance(item.get("text"), str)
        )
    else:
        text = ""

    reasoning_chunks: list[str] = []
    for key in ("reasoning_content", "reasoning"):
        value = message.get(key)
        if isinstance(value, str) and value.strip():
            reasoning_chunks.append(value.strip())
    for match in _THINK_BLOCK.finditer(text):
        reasoning_chunks.append(match.group(1).strip())
    text = _THINK_BLOCK.sub("", text)

    return CompletionParts(text=text.strip(), reasoning="\n".join(reasoning_chunks))


class OpenAICompatibleClient:
    """Blocking urllib transport run in a worker thread."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        timeout_s: float,
        max_retries: int,
        backoff_s: float,
    ) -> None:
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is missing")
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s

    async def chat_completion(
        self,
        user_id: str,
        model_key: str,
        messages: list[dict[str, str]],
        options: ChatOptions,
    ) -> dict[str, Any]:
        _, model_id = parse_model_key(model_key)
        request_body = build_request_body(model_id=model_id, messages=messages, options=options)
        started = time.perf_counter()
        response = await asyncio.to_thread(
            _request_with_retry,
            api_key=self.api_key,
            base_url=self.base_url,
            timeout_s=self.timeout_s,
            max_retries=self.max_retries,
            backoff_s=self.backoff_s,
            request_body=request_body,
        )
        logger.info(
            "llm_call event=done user_id=%s model=%s action=%s step_id=%s latency_ms=%d",
            user_id,
            model_key,
            options.action,
            options.step_id,
            int((time.perf_counter() - started) * 1000),
        )
        return response


def build_request_body(
    *,
    model_id: str,
    messages: list[dict[str, str]],
    options: ChatOptions,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": model_id,
        "temperature": options.temperature,
        "messages": messages,
    }
    if options.reasoning:
        body["reasoning_effort"] = options.reasoning_effort
    if options.max_output_tokens:
        body["max_tokens"] = options.max_output_tokens
    return body


def _request_with_retry(
    *,
    api_key: str,
    base_url: str,
    timeout_s: float,
    max_retries: int,
    backoff_s: float,
    request_body: dict[str, Any],
) -> dict[str, Any]:
    last_error: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            return _request_once(
                api_key=api_key,
                base_url=base_url,
                timeout_s=timeout_s,
                request_body=request_body,
            )
        except LLMRequestError as exc:
            last_error = exc
            if attempt < max_retries and backoff_s > 0:
                time.sleep(backoff_s)

    if last_error is None:
        raise LLMRequestError("LLM request failed")
    raise last_error


def _request_once(
    *,
    api_key: str,
    base_url: str,
    timeout_s: float,
    request_body: dict[str, Any],
) -> dict[str, Any]:
    url = f"{base_url.rstrip('/')}/chat/completions"

    req = request.Request(
        url=url,
        data=json.dumps(request_body).encode("utf-8"),
        method="POST",
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        },
    )
    try:
        with request.urlopen(req, timeout=timeout_s) as response:
            raw = response.read().decode("utf-8")
    except error.HTTPError as exc:
        message = exc.read().decode("utf-8", errors="replace")
        raise LLMRequestError(
            f"LLM request failed with status {exc.code}: {message[:400]}"
        ) from exc
    except error.URLError as exc:
        raise LLMRequestError(f"LLM request failed: {exc.reason}") from exc
    except TimeoutError as exc:
        raise LLMRequestError(f"LLM request timed out after {timeout_s}s") from exc

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LLMRequestError("LLM returned non-JSON response") from exc
    if not isinstance(parsed, dict):
        raise LLMRequestError("LLM response must be a JSON object")
    return parsed
