from __future__ import annotations

import logging
from datetime import datetime

from langchain_core.runnables import RunnableConfig
from langsmith import traceable

from digest_bot.errors import DeliveryError
from digest_bot.graph.context import get_context
from digest_bot.graph.state import AgentState
from digest_bot.services.delivery import DeliveryCoordinator
from digest_bot.services.digest import NO_ARTICLES_MESSAGE, compose_delivery_report

logger = logging.getLogger(__name__)


@traceable(name="deliver_node")
async def deliver_node(state: AgentState, config: RunnableConfig) -> AgentState:
    context = get_context(config)
    settings = context.settings
    digest = state.get("digest", "")
    reply_to = state.get("reply_to")

    coordinator = DeliveryCoordinator(context.channel, settings.send_delay_seconds, sleep=context.sleep)
    if reply_to:
        logger.info("Sending on-demand digest to requester only")
        report = await coordinator.reply(digest, reply_to)
    else:
        logger.info("Sending daily digest to %s recipients", len(settings.recipients))
        report = await coordinator.broadcast(digest, settings.recipients)

    next_state: AgentState = dict(state)
    next_state["delivery_report"] = report.model_dump(mode="json") | report.summary()

    failures = [outcome for outcome in report.outcomes if not outcome.succeeded]
    if failures:
        existing_errors = list(next_state.get("errors", []))
        existing_errors.extend(
            f"Delivery failure ({outcome.recipient}): {outcome.error or 'unknown'}" for outcome in failures
        )
        next_state["errors"] = existing_errors

    if not reply_to and settings.admin_id:
        summary_count = len(state.get("summaries", []))
        report_text = compose_delivery_report(
            report.sent, report.failed, report.total, summary_count, datetime.now(settings.tz)
        )
        try:
            await context.channel.send(settings.admin_id, report_text)
        except DeliveryError as exc:
            logger.error("Failed to send delivery report: %s", exc)

    if report.sent == 0:
        logger.warning("No digest delivered; writing it to the log instead:\n%s", digest)

    return next_state


@traceable(name="report_empty_node")
async def report_empty_node(state: AgentState, config: RunnableConfig) -> AgentState:
    context = get_context(config)
    reply_to = state.get("reply_to")

    logger.info("No articles to summarize")
    if reply_to:
        try:
            await context.channel.send(reply_to, NO_ARTICLES_MESSAGE)
        except DeliveryError as exc:
            logger.error("Failed to notify requester: %s", exc)

    next_state: AgentState = dict(state)
    next_state["digest"] = ""
    return next_state
