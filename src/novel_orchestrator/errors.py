"""Error taxonomy shared by handlers, orchestrators and the worker pool.

Messages start with stable tokens (``episodeId is required``,
``analysisModel is not configured``, ``NOT_FOUND:``,
``STORY_TO_SCRIPT_PARTIAL_FAILED:``) so callers can pattern-match them.
"""

from __future__ import annotations

from dataclasses import dataclass


class PipelineError(Exception):
    """Base class for every error raised by the orchestration core."""


class TaskValidationError(PipelineError):
    """Required input is missing or inconsistent; raised before expensive work."""


class InvalidPayloadError(TaskValidationError):
    """A job payload field has the wrong shape."""

    def __init__(self, field: str, expected: str) -> None:
        super().__init__(f"payload.{field} must be {expected}")
        self.field = field
        self.expected = expected


class ModelNotConfiguredError(TaskValidationError):
    def __init__(self) -> None:
        super().__init__("analysisModel is not configured")


class NotFoundError(PipelineError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"NOT_FOUND: {detail}")
        self.detail = detail


class TaskTerminatedError(PipelineError):
    """The task was cancelled or superseded; never retried or recorded as a failure."""

    def __init__(self, task_id: str, checkpoint: str, reason: str = "cancelled") -> None:
        super().__init__(f"TASK_TERMINATED: task {task_id} {reason} at {checkpoint}")
        self.task_id = task_id
        self.checkpoint = checkpoint
        self.reason = reason


class JsonParseError(PipelineError):
    """Model output did not match the structured schema a step expects."""

    def __init__(self, message: str, raw_text: str) -> None:
        super().__init__(message)
        self.raw_text = raw_text


class ClipBoundaryError(PipelineError):
    """A clip's start/end markers could not be located in the source text."""


@dataclass(frozen=True)
class FailurePreview:
    item_id: str
    reason: str


class PartialFailureError(PipelineError):
    """Some sub-units of a batch failed; carries a preview of the first failures."""

    PREVIEW_LIMIT = 3

    def __init__(
        self,
        code: str,
        *,
        failed_count: int,
        total_count: int,
        unit_label: str,
        failures: list[FailurePreview],
    ) -> None:
        self.code = code
        self.failed_count = failed_count
        self.total_count = total_count
        self.failures = failures[: self.PREVIEW_LIMIT]
        preview = " | ".join(f"{item.item_id}:{item.reason}" for item in self.failures)
        super().__init__(
            f"{code}: {failed_count}/{total_count} {unit_label} failed. {preview}".rstrip()
        )


class PersistenceValidationError(PipelineError):
    """A generated field failed shape validation; aborts the transaction."""


class PersistenceTimeoutError(PipelineError):
    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"Persistence transaction exceeded {timeout_s:.1f}s")
        self.timeout_s = timeout_s


class PromptTemplateError(PipelineError):
    """A prompt id/locale is unknown or a template variable was not supplied."""


class LLMRequestError(PipelineError):
    """The completion endpoint failed or returned an unusable response."""
