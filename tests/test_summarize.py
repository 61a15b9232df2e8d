from datetime import datetime, timedelta, timezone

import httpx
import pytest

from digest_bot.config import Settings
from digest_bot.errors import SummarizerError
from digest_bot.schemas.article import Article
from digest_bot.services.summarizer import (
    AnthropicSummarizer,
    ChatCompletionsSummarizer,
    ExtractiveSummarizer,
    SummarizationGateway,
    build_summarizer,
)

NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def _article(idx: int, title: str | None = None, hours_old: int | None = None) -> Article:
    return Article(
        title=title or f"AI startup story {idx}",
        link=f"https://example.com/{idx}",
        source="Example",
        published_at=NOW - timedelta(hours=hours_old if hours_old is not None else idx),
        raw_snippet=f"Body of story {idx}.",
    )


class _FakeSummarizer:
    name = "fake"

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.calls: list[str] = []

    async def summarize(self, title: str, content: str) -> str:
        self.calls.append(title)
        if title in self.fail_on:
            raise SummarizerError("quota exhausted")
        return f"  Summary of {title}.  "


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.mark.asyncio
async def test_gateway_never_exceeds_cap() -> None:
    summarizer = _FakeSummarizer()
    gateway = SummarizationGateway(summarizer, max_articles=10, delay_seconds=0)

    results = await gateway.summarize_all([_article(idx) for idx in range(50)])

    assert len(summarizer.calls) == 10
    assert len(results) == 10


@pytest.mark.asyncio
async def test_gateway_orders_newest_first_and_trims_text() -> None:
    articles = [_article(1, hours_old=30), _article(2, hours_old=1), _article(3, hours_old=10)]
    gateway = SummarizationGateway(_FakeSummarizer(), delay_seconds=0)

    results = await gateway.summarize_all(articles)

    assert [result.link for result in results] == [
        "https://example.com/2",
        "https://example.com/3",
        "https://example.com/1",
    ]
    assert results[0].summary_text == "Summary of AI startup story 2."


@pytest.mark.asyncio
async def test_gateway_skips_failed_article_and_continues() -> None:
    articles = [_article(idx) for idx in range(1, 6)]
    summarizer = _FakeSummarizer(fail_on={"AI startup story 3"})
    gateway = SummarizationGateway(summarizer, delay_seconds=0)

    results = await gateway.summarize_all(articles)

    assert len(summarizer.calls) == 5
    assert [result.title for result in results] == [
        "AI startup story 1",
        "AI startup story 2",
        "AI startup story 4",
        "AI startup story 5",
    ]
    assert len(gateway.errors) == 1


@pytest.mark.asyncio
async def test_gateway_returns_empty_without_calling_summarizer() -> None:
    summarizer = _FakeSummarizer()
    gateway = SummarizationGateway(summarizer, delay_seconds=0)

    results = await gateway.summarize_all([_article(1, title="Local weather report")])

    assert results == []
    assert summarizer.calls == []


@pytest.mark.asyncio
async def test_gateway_paces_between_consecutive_calls() -> None:
    sleeps = _Sleeps()
    gateway = SummarizationGateway(_FakeSummarizer(), delay_seconds=1.5, sleep=sleeps)

    await gateway.summarize_all([_article(idx) for idx in range(3)])

    assert sleeps.delays == [1.5, 1.5]


@pytest.mark.asyncio
async def test_chat_completions_summarizer_parses_choice() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["path"] = request.url.path
        return httpx.Response(200, json={"choices": [{"message": {"content": " Two sentences. Done. "}}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        summarizer = ChatCompletionsSummarizer("openai", client, "https://api.openai.com/v1", "sk-test", "gpt-4o-mini")
        text = await summarizer.summarize("Title", "Content")

    assert text == "Two sentences. Done."
    assert seen == {"auth": "Bearer sk-test", "path": "/v1/chat/completions"}


@pytest.mark.asyncio
async def test_provider_errors_raise_summarizer_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "anthropic" in request.url.host:
            return httpx.Response(200, json={"content": []})
        return httpx.Response(429, json={"error": "rate limited"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(SummarizerError):
            await ChatCompletionsSummarizer("groq", client, "https://api.groq.com/openai/v1", "k", "m").summarize("t", "c")
        with pytest.raises(SummarizerError):
            await AnthropicSummarizer(client, "k").summarize("t", "c")


@pytest.mark.asyncio
async def test_extractive_summarizer_uses_leading_sentences() -> None:
    text = await ExtractiveSummarizer(sentence_count=2).summarize("T", "One. Two! Three? Four.")
    assert text == "One. Two!"


@pytest.mark.asyncio
async def test_build_summarizer_requires_provider_key() -> None:
    settings = Settings(_env_file=None, ai_provider="gemini", gemini_api_key=None)
    async with httpx.AsyncClient() as client:
        with pytest.raises(SummarizerError):
            build_summarizer(settings, client)
        assert isinstance(build_summarizer(settings, client, dry_run=True), ExtractiveSummarizer)
