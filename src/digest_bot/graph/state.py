from __future__ import annotations

from typing import Any, TypedDict


class AgentState(TypedDict, total=False):
    run_id: str
    started_at: str
    dry_run: bool
    reply_to: str | None
    articles: list[dict[str, Any]]
    summaries: list[dict[str, Any]]
    digest: str
    delivery_report: dict[str, Any]
    errors: list[str]
