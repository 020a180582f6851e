"""LangGraph workflow: persisted clips -> storyboard panels."""

from __future__ import annotations

from langgraph.graph import END, StateGraph

from novel_orchestrator.graph.nodes import script_to_storyboard as nodes
from novel_orchestrator.graph.state import (
    ScriptToStoryboardState,
    initial_script_to_storyboard_state,
)
from novel_orchestrator.graph.types import (
    CharacterInfo,
    ClipInput,
    LocationInfo,
    RunStep,
    ScriptToStoryboardResult,
    ScriptToStoryboardTemplates,
)


def build_script_to_storyboard_graph(deps: nodes.ScriptToStoryboardDeps):
    async def _plan_panels(state: ScriptToStoryboardState) -> dict:
        return await nodes.plan_panels(state, deps)

    async def _cinematography(state: ScriptToStoryboardState) -> dict:
        return await nodes.cinematography(state, deps)

    async def _acting_direction(state: ScriptToStoryboardState) -> dict:
        return await nodes.acting_direction(state, deps)

    async def _expand_panel_details(state: ScriptToStoryboardState) -> dict:
        return await nodes.expand_panel_details(state, deps)

    async def _assemble(state: ScriptToStoryboardState) -> dict:
        return await nodes.assemble(state, deps)

    graph = StateGraph(ScriptToStoryboardState)

    graph.add_node("plan_panels", _plan_panels)
    graph.add_node("cinematography", _cinematography)
    graph.add_node("acting_direction", _acting_direction)
    graph.add_node("expand_panel_details", _expand_panel_details)
    graph.add_node("assemble", _assemble)

    graph.set_entry_point("plan_panels")
    graph.add_edge("plan_panels", "cinematography")
    graph.add_edge("cinematography", "acting_direction")
    graph.add_edge("acting_direction", "expand_panel_details")
    graph.add_edge("expand_panel_details", "assemble")
    graph.add_edge("assemble", END)

    return graph.compile()


async def run_script_to_storyboard_orchestrator(
    *,
    clips: list[ClipInput],
    characters: list[CharacterInfo],
    locations: list[LocationInfo],
    templates: ScriptToStoryboardTemplates,
    run_step: RunStep,
    locale: str,
) -> ScriptToStoryboardResult:
    graph = build_script_to_storyboard_graph(
        nodes.ScriptToStoryboardDeps(run_step=run_step, templates=templates, locale=locale)
    )
    final_state = await graph.ainvoke(
        initial_script_to_storyboard_state(clips, characters=characters, locations=locations)
    )
    return ScriptToStoryboardResult(
        clip_panels=final_state["clip_panels"],
        summary=final_state["summary"],
    )
