from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from langgraph.graph import END, StateGraph

from digest_bot.graph.context import PipelineContext
from digest_bot.graph.state import AgentState
from digest_bot.nodes.collect import collect_node
from digest_bot.nodes.compose import compose_node
from digest_bot.nodes.deliver import deliver_node, report_empty_node
from digest_bot.nodes.summarize import summarize_node


def route_after_summarize(state: AgentState) -> str:
    return "compose" if state.get("summaries") else "report_empty"


def build_workflow():
    graph = StateGraph(AgentState)

    graph.add_node("collect", collect_node)
    graph.add_node("summarize", summarize_node)
    graph.add_node("compose", compose_node)
    graph.add_node("deliver", deliver_node)
    graph.add_node("report_empty", report_empty_node)

    graph.set_entry_point("collect")
    graph.add_edge("collect", "summarize")
    graph.add_conditional_edges(
        "summarize",
        route_after_summarize,
        {"compose": "compose", "report_empty": "report_empty"},
    )
    graph.add_edge("compose", "deliver")
    graph.add_edge("deliver", END)
    graph.add_edge("report_empty", END)

    return graph.compile()


async def run_pipeline(context: PipelineContext, dry_run: bool = False, reply_to: str | None = None) -> AgentState:
    initial_state: AgentState = {
        "run_id": str(uuid4()),
        "started_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        "reply_to": reply_to,
        "errors": [],
    }
    workflow = build_workflow()
    return await workflow.ainvoke(initial_state, config={"configurable": {"context": context}})
