import asyncio
import json

import pytest

from conftest import NOVEL_TEXT, story_response
from novel_orchestrator.errors import ClipBoundaryError, JsonParseError, TaskTerminatedError
from novel_orchestrator.graph.nodes.story_to_script import (
    StoryToScriptDeps,
    analyze_characters,
    estimated_step_total,
)
from novel_orchestrator.graph.story_to_script import run_story_to_script_orchestrator
from novel_orchestrator.graph.types import CharacterInfo, StepMeta, StepOutput
from novel_orchestrator.handlers.story_to_script import load_templates
from novel_orchestrator.llm.client import ChatOptions


class FakeRunStep:
    def __init__(self, responder) -> None:
        self.responder = responder
        self.metas: list[StepMeta] = []
        self.prompts: list[str] = []

    async def __call__(self, meta: StepMeta, prompt: str, action: str, max_tokens: int) -> StepOutput:
        self.metas.append(meta)
        self.prompts.append(prompt)
        text = self.responder(ChatOptions(action=action, step_id=meta.step_id), prompt)
        return StepOutput(text=text)


def _run(run_step: FakeRunStep, locale: str = "en"):
    return asyncio.run(
        run_story_to_script_orchestrator(
            content=NOVEL_TEXT,
            base_characters=["Old Chen"],
            base_locations=[],
            base_character_introductions=[CharacterInfo(name="Old Chen", introduction="Harbor master")],
            templates=load_templates(locale),
            run_step=run_step,
            locale=locale,
        )
    )


def test_story_to_script_produces_clips_and_screenplays() -> None:
    run_step = FakeRunStep(story_response)
    result = _run(run_step)

    assert [item.name for item in result.analyzed_characters] == ["Lin Yue"]
    assert result.analyzed_characters[0].profile == {"age": "24"}
    assert [item.name for item in result.analyzed_locations] == ["Harbor"]

    assert [clip.clip_id for clip in result.clip_list] == ["clip_1", "clip_2"]
    assert result.clip_list[0].content == (
        "Lin Yue runs to the harbor before midnight. She waits in the fog."
    )
    assert result.clip_list[1].content.endswith("without looking back.")

    summary = result.summary
    assert summary.clip_count == 2
    assert summary.screenplay_success_count + summary.screenplay_failed_count == summary.clip_count
    assert summary.total_step_count == 5
    assert all(item.success and item.screenplay for item in result.screenplay_results)

    assert [meta.step_id for meta in run_step.metas] == [
        "analyze_characters",
        "analyze_locations",
        "split_clips",
        "screenplay_clip_1",
        "screenplay_clip_2",
    ]
    assert [meta.step_index for meta in run_step.metas[3:]] == [4, 5]
    assert {meta.step_total for meta in run_step.metas[3:]} == {5}


def test_story_prompts_include_library_names() -> None:
    run_step = FakeRunStep(story_response)
    _run(run_step)
    assert "Old Chen" in run_step.prompts[0]
    # The clip split sees both the library and the freshly analysed names.
    assert "Old Chen, Lin Yue" in run_step.prompts[2]
    assert "Harbor" in run_step.prompts[2]


def test_malformed_output_is_retried_with_suffixed_step_id() -> None:
    answers = {"analyze_characters": ["not json at all"]}

    def responder(options: ChatOptions, prompt: str) -> str:
        pending = answers.get(options.action)
        if pending:
            return pending.pop(0)
        return story_response(options, prompt)

    run_step = FakeRunStep(responder)
    result = _run(run_step)
    assert result.summary.clip_count == 2
    assert [meta.step_id for meta in run_step.metas[:2]] == [
        "analyze_characters",
        "analyze_characters_r2",
    ]
    assert run_step.metas[1].step_index == run_step.metas[0].step_index
    assert run_step.metas[1].step_attempt == 2


def test_clip_boundary_failure_after_two_attempts() -> None:
    def responder(options: ChatOptions, prompt: str) -> str:
        if options.action == "split_clips":
            return json.dumps({"clips": [{"start": "Nowhere in text", "end": "fog."}]})
        return story_response(options, prompt)

    run_step = FakeRunStep(responder)
    with pytest.raises(ClipBoundaryError):
        _run(run_step)
    assert [meta.step_id for meta in run_step.metas if meta.step_id.startswith("split")] == [
        "split_clips",
        "split_clips_r2",
    ]


def test_failed_screenplay_is_recorded_not_raised() -> None:
    def responder(options: ChatOptions, prompt: str) -> str:
        if options.step_id and options.step_id.startswith("screenplay_clip_2"):
            return json.dumps({"no_scenes": True})
        return story_response(options, prompt)

    result = _run(FakeRunStep(responder))
    failed = [item for item in result.screenplay_results if not item.success]
    assert [item.clip_id for item in failed] == ["clip_2"]
    assert failed[0].screenplay is None
    assert "scenes" in failed[0].error
    assert result.summary.screenplay_failed_count == 1
    assert result.summary.screenplay_success_count == 1


def test_termination_inside_screenplay_step_propagates() -> None:
    def responder(options: ChatOptions, prompt: str) -> str:
        if options.action == "screenplay_conversion":
            raise TaskTerminatedError("task-1", "story_to_script_step:screenplay_clip_1")
        return story_response(options, prompt)

    with pytest.raises(TaskTerminatedError):
        _run(FakeRunStep(responder))


def test_empty_clip_list_is_a_parse_error() -> None:
    def responder(options: ChatOptions, prompt: str) -> str:
        if options.action == "split_clips":
            return json.dumps({"clips": []})
        return story_response(options, prompt)

    with pytest.raises(JsonParseError):
        _run(FakeRunStep(responder))


def test_early_steps_estimate_total_from_text_length() -> None:
    assert estimated_step_total(NOVEL_TEXT) == 4
    assert estimated_step_total("x" * 15000) == 13

    run_step = FakeRunStep(story_response)
    deps = StoryToScriptDeps(run_step=run_step, templates=load_templates("en"), locale="en")
    asyncio.run(analyze_characters({"content": "x" * 15000}, deps))
    assert run_step.metas[0].step_index == 1
    assert run_step.metas[0].step_total == 13
