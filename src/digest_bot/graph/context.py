from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx
from langchain_core.runnables import RunnableConfig

from digest_bot.config import Settings
from digest_bot.schemas.article import FeedSource
from digest_bot.services.channel import MessageChannel
from digest_bot.services.summarizer import Summarizer


@dataclass
class PipelineContext:
    """Collaborators shared by every node of one pipeline run."""

    settings: Settings
    http_client: httpx.AsyncClient
    channel: MessageChannel
    summarizer: Summarizer
    sources: list[FeedSource] = field(default_factory=list)
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep


def get_context(config: RunnableConfig) -> PipelineContext:
    context = (config.get("configurable") or {}).get("context")
    if not isinstance(context, PipelineContext):
        raise RuntimeError("pipeline context missing from run config")
    return context
