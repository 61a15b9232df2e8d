from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig
from langsmith import traceable

from digest_bot.graph.context import get_context
from digest_bot.graph.state import AgentState
from digest_bot.schemas.article import parse_articles, serialize_summaries
from digest_bot.services.summarizer import SummarizationGateway

logger = logging.getLogger(__name__)


@traceable(name="summarize_node")
async def summarize_node(state: AgentState, config: RunnableConfig) -> AgentState:
    context = get_context(config)
    settings = context.settings

    articles = parse_articles(state.get("articles"))
    gateway = SummarizationGateway(
        context.summarizer,
        max_articles=settings.max_summaries_per_run,
        delay_seconds=settings.summarize_delay_seconds,
        sleep=context.sleep,
    )
    summaries = await gateway.summarize_all(articles)

    next_state: AgentState = dict(state)
    next_state["summaries"] = serialize_summaries(summaries)

    existing_errors = list(next_state.get("errors", []))
    existing_errors.extend(gateway.errors)
    next_state["errors"] = existing_errors

    logger.info("Summarization complete: %s items", len(summaries))
    return next_state
