from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

import httpx

from digest_bot.config import Settings
from digest_bot.errors import SummarizerError
from digest_bot.schemas.article import Article, SummaryResult
from digest_bot.services.relevance import filter_relevant

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a technical analyst writing for experienced tech professionals. "
    "Focus on technical depth, market implications, and insights that go beyond surface-level reporting."
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def build_prompt(title: str, content: str) -> str:
    return (
        "You are a tech industry analyst providing insights to experienced software engineers, "
        "CTOs, and tech professionals.\n\n"
        "Analyze this article with a focus on:\n"
        "- Technical architecture, implementation details, and engineering decisions\n"
        "- Market positioning, competitive landscape, and business implications\n"
        "- Performance metrics, scalability considerations, or benchmarks when mentioned\n"
        "- Key technologies, frameworks, protocols, or methodologies involved\n"
        "- Potential disruptions to existing tech stacks or industry dynamics\n\n"
        f"Title: {title}\n\n"
        f"Content: {content}\n\n"
        "Provide a 2-3 sentence technical summary that gives insights beyond what's obvious "
        "from just reading the headline. Focus on the \"why\" and \"how\" that matters to tech professionals."
    )


def split_sentences(text: str) -> list[str]:
    cleaned = " ".join(text.strip().split())
    if not cleaned:
        return []
    return [part.strip() for part in _SENTENCE_SPLIT.split(cleaned) if part.strip()]


class Summarizer(Protocol):
    name: str

    async def summarize(self, title: str, content: str) -> str: ...


class ChatCompletionsSummarizer:
    """OpenAI-compatible ``/chat/completions`` endpoint (OpenAI, Groq, Perplexity, OpenRouter)."""

    def __init__(
        self,
        name: str,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        model: str,
        max_content_chars: int = 3000,
        max_tokens: int = 180,
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        self.name = name
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.max_content_chars = max_content_chars
        self.max_tokens = max_tokens
        self.extra_headers = extra_headers or {}

    async def summarize(self, title: str, content: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **self.extra_headers,
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(title, content[: self.max_content_chars])},
            ],
            "max_tokens": self.max_tokens,
            "temperature": 0.2,
        }
        data = await _post_json(self.client, self.name, f"{self.base_url}/chat/completions", headers, payload)
        return _require_text(self.name, lambda: data["choices"][0]["message"]["content"])


class AnthropicSummarizer:
    name = "claude"

    def __init__(self, client: httpx.AsyncClient, api_key: str, model: str = "claude-3-5-haiku-latest") -> None:
        self.client = client
        self.api_key = api_key
        self.model = model

    async def summarize(self, title: str, content: str) -> str:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
        }
        payload = {
            "model": self.model,
            "max_tokens": 200,
            "temperature": 0.2,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": build_prompt(title, content[:4000])}],
        }
        data = await _post_json(self.client, self.name, "https://api.anthropic.com/v1/messages", headers, payload)
        return _require_text(self.name, lambda: data["content"][0]["text"])


class GeminiSummarizer:
    name = "gemini"

    def __init__(self, client: httpx.AsyncClient, api_key: str, model: str = "gemini-1.5-flash-latest") -> None:
        self.client = client
        self.api_key = api_key
        self.model = model

    async def summarize(self, title: str, content: str) -> str:
        url = f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}
        payload = {
            "contents": [{"parts": [{"text": f"{SYSTEM_PROMPT}\n\n{build_prompt(title, content[:3000])}"}]}],
            "generationConfig": {"maxOutputTokens": 180, "temperature": 0.2},
        }
        data = await _post_json(self.client, self.name, url, headers, payload)
        return _require_text(self.name, lambda: data["candidates"][0]["content"]["parts"][0]["text"])


class ExtractiveSummarizer:
    """Offline stand-in for dry runs: the first sentences of the article text."""

    name = "extractive"

    def __init__(self, sentence_count: int = 2) -> None:
        self.sentence_count = sentence_count

    async def summarize(self, title: str, content: str) -> str:
        sentences = split_sentences(content)
        if not sentences:
            return f"{title}."
        summary = " ".join(sentences[: self.sentence_count])
        return summary[:400].rstrip()


async def _post_json(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    headers: dict[str, str],
    payload: dict[str, Any],
) -> Any:
    try:
        response = await client.post(url, headers=headers, json=payload)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as exc:
        raise SummarizerError(f"{provider} returned HTTP {exc.response.status_code}") from exc
    except (httpx.HTTPError, ValueError) as exc:
        raise SummarizerError(f"{provider} request failed: {exc}") from exc


def _require_text(provider: str, getter: Callable[[], Any]) -> str:
    try:
        text = str(getter() or "").strip()
    except (KeyError, IndexError, TypeError) as exc:
        raise SummarizerError(f"{provider} returned an unexpected payload") from exc
    if not text:
        raise SummarizerError(f"{provider} returned an empty summary")
    return text


_CHAT_COMPLETION_PROVIDERS: dict[str, tuple[str, str, int, int]] = {
    # provider: (base url, default model, content chars, max tokens)
    "openai": ("https://api.openai.com/v1", "gpt-4o-mini", 3000, 180),
    "groq": ("https://api.groq.com/openai/v1", "llama-3.1-70b-versatile", 3000, 180),
    "perplexity": ("https://api.perplexity.ai", "sonar", 2000, 200),
}


def build_summarizer(settings: Settings, client: httpx.AsyncClient, dry_run: bool = False) -> Summarizer:
    if dry_run:
        return ExtractiveSummarizer()

    provider = settings.ai_provider
    api_key = settings.provider_api_key()
    if api_key is None:
        raise SummarizerError(f"No API key configured for provider {provider!r}")

    if provider == "claude":
        return AnthropicSummarizer(client, api_key, **_model_override(settings))
    if provider == "gemini":
        return GeminiSummarizer(client, api_key, **_model_override(settings))
    if provider == "openrouter":
        return ChatCompletionsSummarizer(
            name=provider,
            client=client,
            base_url=settings.openrouter_base_url,
            api_key=api_key,
            model=settings.summary_model or "openai/gpt-oss-20b",
            extra_headers={"X-Title": "Tech Digest Bot"},
        )

    base_url, default_model, content_chars, max_tokens = _CHAT_COMPLETION_PROVIDERS[provider]
    return ChatCompletionsSummarizer(
        name=provider,
        client=client,
        base_url=base_url,
        api_key=api_key,
        model=settings.summary_model or default_model,
        max_content_chars=content_chars,
        max_tokens=max_tokens,
    )


def _model_override(settings: Settings) -> dict[str, str]:
    return {"model": settings.summary_model} if settings.summary_model else {}


class SummarizationGateway:
    def __init__(
        self,
        summarizer: Summarizer,
        max_articles: int = 10,
        delay_seconds: float = 1.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.summarizer = summarizer
        self.max_articles = max_articles
        self.delay_seconds = delay_seconds
        self.sleep = sleep
        self.errors: list[str] = []

    def select(self, articles: list[Article]) -> list[Article]:
        relevant = filter_relevant(articles)
        relevant.sort(key=lambda article: article.published_at.astimezone(timezone.utc), reverse=True)
        logger.info("Relevant articles: %s of %s", len(relevant), len(articles))
        return relevant[: self.max_articles]

    async def summarize_all(self, articles: list[Article]) -> list[SummaryResult]:
        self.errors = []
        selected = self.select(articles)
        if not selected:
            logger.warning("No relevant articles found")
            return []

        summaries: list[SummaryResult] = []
        for index, article in enumerate(selected):
            if index and self.delay_seconds > 0:
                await self.sleep(self.delay_seconds)

            logger.info("Summarizing article: %s", article.title[:50])
            try:
                text = await self.summarizer.summarize(article.title, article.effective_content)
            except SummarizerError as exc:
                error = f"Summarization failed ({article.link}): {exc}"
                logger.error(error)
                self.errors.append(error)
                continue
            summaries.append(SummaryResult.from_article(article, text))

        logger.info("Summarized %s of %s selected articles", len(summaries), len(selected))
        return summaries


async def check_summarizer(summarizer: Summarizer) -> str:
    """Summarize a fixed sample article; used to verify provider credentials."""
    title = "OpenAI Announces New Model with Improved Reasoning Capabilities"
    content = (
        "OpenAI today announced its most advanced language model yet, featuring reasoning capabilities "
        "that allow it to solve complex mathematical problems and write sophisticated code. The model "
        "shows significant improvements in logical thinking and keeps context across much longer "
        "conversations. Early tests show it can outperform human experts in several specialized domains."
    )
    started = datetime.now(timezone.utc)
    summary = await summarizer.summarize(title, content)
    elapsed = (datetime.now(timezone.utc) - started).total_seconds()
    logger.info("%s summarizer answered in %.1fs", summarizer.name, elapsed)
    return summary
