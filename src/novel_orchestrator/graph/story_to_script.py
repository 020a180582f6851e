"""LangGraph workflow: novel text -> characters, locations, clips, screenplays."""

from __future__ import annotations

from langgraph.graph import END, StateGraph

from novel_orchestrator.graph.nodes import story_to_script as nodes
from novel_orchestrator.graph.state import StoryToScriptState, initial_story_to_script_state
from novel_orchestrator.graph.types import (
    CharacterInfo,
    RunStep,
    StoryToScriptResult,
    StoryToScriptTemplates,
)


def build_story_to_script_graph(deps: nodes.StoryToScriptDeps):
    async def _analyze_characters(state: StoryToScriptState) -> dict:
        return await nodes.analyze_characters(state, deps)

    async def _analyze_locations(state: StoryToScriptState) -> dict:
        return await nodes.analyze_locations(state, deps)

    async def _split_clips(state: StoryToScriptState) -> dict:
        return await nodes.split_clips(state, deps)

    async def _convert_screenplays(state: StoryToScriptState) -> dict:
        return await nodes.convert_screenplays(state, deps)

    async def _summarize(state: StoryToScriptState) -> dict:
        return await nodes.summarize(state, deps)

    graph = StateGraph(StoryToScriptState)

    graph.add_node("analyze_characters", _analyze_characters)
    graph.add_node("analyze_locations", _analyze_locations)
    graph.add_node("split_clips", _split_clips)
    graph.add_node("convert_screenplays", _convert_screenplays)
    graph.add_node("summarize", _summarize)

    graph.set_entry_point("analyze_characters")
    graph.add_edge("analyze_characters", "analyze_locations")
    graph.add_edge("analyze_locations", "split_clips")
    graph.add_edge("split_clips", "convert_screenplays")
    graph.add_edge("convert_screenplays", "summarize")
    graph.add_edge("summarize", END)

    return graph.compile()


async def run_story_to_script_orchestrator(
    *,
    content: str,
    base_characters: list[str],
    base_locations: list[str],
    base_character_introductions: list[CharacterInfo],
    templates: StoryToScriptTemplates,
    run_step: RunStep,
    locale: str,
) -> StoryToScriptResult:
    graph = build_story_to_script_graph(
        nodes.StoryToScriptDeps(run_step=run_step, templates=templates, locale=locale)
    )
    final_state = await graph.ainvoke(
        initial_story_to_script_state(
            content,
            base_characters=base_characters,
            base_locations=base_locations,
            base_character_introductions=base_character_introductions,
        )
    )
    return StoryToScriptResult(
        analyzed_characters=final_state["analyzed_characters"],
        analyzed_locations=final_state["analyzed_locations"],
        clip_list=final_state["clip_list"],
        screenplay_results=final_state["screenplay_results"],
        summary=final_state["summary"],
    )
