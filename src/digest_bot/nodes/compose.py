from __future__ import annotations

import logging
from datetime import datetime

from langchain_core.runnables import RunnableConfig
from langsmith import traceable

from digest_bot.graph.context import get_context
from digest_bot.graph.state import AgentState
from digest_bot.schemas.article import parse_summaries
from digest_bot.services.digest import compose_digest, format_date_label

logger = logging.getLogger(__name__)


@traceable(name="compose_node")
async def compose_node(state: AgentState, config: RunnableConfig) -> AgentState:
    context = get_context(config)
    settings = context.settings

    summaries = parse_summaries(state.get("summaries"))
    provider_label = context.summarizer.name if state.get("dry_run") else settings.ai_provider
    digest = compose_digest(summaries, format_date_label(datetime.now(settings.tz)), provider_label)

    next_state: AgentState = dict(state)
    next_state["digest"] = digest

    logger.info("Digest composed: %s entries, %s chars", len(summaries), len(digest))
    return next_state
