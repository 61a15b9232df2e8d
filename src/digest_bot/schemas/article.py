from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FeedSource(BaseModel):
    rss: str
    name: str | None = None


class SourcesFile(BaseModel):
    sources: list[FeedSource] = Field(default_factory=list)


class Article(BaseModel):
    title: str = Field(min_length=1)
    link: str
    source: str
    published_at: datetime
    raw_snippet: str = ""
    description: str = ""
    enriched_content: str | None = None

    @property
    def effective_content(self) -> str:
        if self.enriched_content and len(self.enriched_content) > len(self.raw_snippet):
            return self.enriched_content
        return self.raw_snippet

    def apply_enrichment(self, text: str | None) -> bool:
        """Keep ``text`` only if it is strictly longer than what we already hold."""
        if not text or len(text) <= len(self.effective_content):
            return False
        self.enriched_content = text
        return True


class SummaryResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    link: str
    source: str
    summary_text: str

    @classmethod
    def from_article(cls, article: Article, summary_text: str) -> SummaryResult:
        return cls(
            title=article.title,
            link=article.link,
            source=article.source,
            summary_text=summary_text.strip(),
        )


class DeliveryOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    recipient: str
    succeeded: bool
    error: str | None = None


class DeliveryReport(BaseModel):
    outcomes: list[DeliveryOutcome] = Field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.succeeded)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def summary(self) -> dict[str, int]:
        return {"sent": self.sent, "failed": self.failed, "total": self.total}


def serialize_articles(articles: list[Article]) -> list[dict[str, Any]]:
    return [article.model_dump(mode="json") for article in articles]


def parse_articles(payload: list[dict[str, Any]] | None) -> list[Article]:
    if not payload:
        return []
    return [Article.model_validate(item) for item in payload]


def serialize_summaries(summaries: list[SummaryResult]) -> list[dict[str, Any]]:
    return [summary.model_dump(mode="json") for summary in summaries]


def parse_summaries(payload: list[dict[str, Any]] | None) -> list[SummaryResult]:
    if not payload:
        return []
    return [SummaryResult.model_validate(item) for item in payload]
