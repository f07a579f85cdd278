from typing import Optional

from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, END

from pipeline.state import LandmarkState
from pipeline.nodes import (
    get_settings,
    node_encode,
    node_recognize,
    node_enrich,
    node_narrate,
    node_assemble,
)


def continue_unless_error(next_node):
    """Router factory: stop the run as soon as a node reports an error."""

    def route(state):
        if state.get("error"):
            return END
        return next_node

    return route


def after_enrich(state, config: Optional[RunnableConfig] = None):
    """Router: skip narration when it is disabled for this run."""
    if state.get("error"):
        return END
    if not get_settings(config).narration_enabled:
        return "assemble"
    return "narrate"


def build_graph():
    workflow = StateGraph(LandmarkState)

    # Add all nodes
    workflow.add_node("encode", node_encode)
    workflow.add_node("recognize", node_recognize)
    workflow.add_node("enrich", node_enrich)
    workflow.add_node("narrate", node_narrate)
    workflow.add_node("assemble", node_assemble)

    # Set entry point
    workflow.set_entry_point("encode")

    # Each stage only runs if the previous one succeeded
    workflow.add_conditional_edges(
        "encode",
        continue_unless_error("recognize"),
        {"recognize": "recognize", END: END},
    )
    workflow.add_conditional_edges(
        "recognize",
        continue_unless_error("enrich"),
        {"enrich": "enrich", END: END},
    )
    workflow.add_conditional_edges(
        "enrich",
        after_enrich,
        {"narrate": "narrate", "assemble": "assemble", END: END},
    )
    workflow.add_conditional_edges(
        "narrate",
        continue_unless_error("assemble"),
        {"assemble": "assemble", END: END},
    )

    workflow.add_edge("assemble", END)

    return workflow.compile()


pipeline = build_graph()
