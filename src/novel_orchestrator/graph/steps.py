"""Shared step helper used by the workflow nodes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from novel_orchestrator.errors import ClipBoundaryError, JsonParseError
from novel_orchestrator.graph.json_output import parse_json_payload
from novel_orchestrator.graph.types import RunStep, StepMeta

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_JSON_STEP_ATTEMPTS = 2


async def run_json_step(
    run_step: RunStep,
    meta: StepMeta,
    prompt: str,
    action: str,
    max_output_tokens: int,
    normalize: Callable[[object, str], T],
    *,
    max_attempts: int = MAX_JSON_STEP_ATTEMPTS,
) -> T:
    """Run one step and normalize its JSON output, retrying malformed answers.

    ``normalize`` receives the parsed JSON value and the raw text and raises
    ``JsonParseError`` (or ``ClipBoundaryError``) when the shape is wrong.
    Cancellation and transport errors propagate on the first attempt.
    """
    last_error: JsonParseError | ClipBoundaryError | None = None
    for attempt in range(1, max_attempts + 1):
        attempt_meta = meta.for_attempt(attempt)
        output = await run_step(attempt_meta, prompt, action, max_output_tokens)
        try:
            return normalize(parse_json_payload(output.text), output.text)
        except (JsonParseError, ClipBoundaryError) as exc:
            last_error = exc
            logger.warning(
                "json_step event=invalid_output step_id=%s attempt=%d action=%s error=%s",
                attempt_meta.step_id,
                attempt,
                action,
                exc,
            )
    if last_error is None:
        raise ValueError("max_attempts must be at least 1")
    raise last_error
