"""LLM port and adapters."""

from novel_orchestrator.llm.client import (
    ChatOptions,
    CompletionParts,
    LLMClient,
    OpenAICompatibleClient,
    get_completion_parts,
    parse_model_key,
)

__all__ = [
    "ChatOptions",
    "CompletionParts",
    "LLMClient",
    "OpenAICompatibleClient",
    "get_completion_parts",
    "parse_model_key",
]
