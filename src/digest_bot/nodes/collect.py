from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig
from langsmith import traceable

from digest_bot.graph.context import get_context
from digest_bot.graph.state import AgentState
from digest_bot.schemas.article import serialize_articles
from digest_bot.services.rss_client import FeedAggregator

logger = logging.getLogger(__name__)


@traceable(name="collect_node")
async def collect_node(state: AgentState, config: RunnableConfig) -> AgentState:
    context = get_context(config)
    aggregator = FeedAggregator(context.settings, context.http_client)
    articles = await aggregator.collect_articles(context.sources)

    next_state: AgentState = dict(state)
    next_state["articles"] = serialize_articles(articles)

    existing_errors = list(next_state.get("errors", []))
    existing_errors.extend(aggregator.errors)
    next_state["errors"] = existing_errors

    logger.info("Collection complete: %s articles", len(articles))
    return next_state
