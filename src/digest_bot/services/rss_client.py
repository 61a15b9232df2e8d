from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import feedparser
import httpx
import yaml
from bs4 import BeautifulSoup

from digest_bot.config import Settings
from digest_bot.schemas.article import Article, FeedSource, SourcesFile
from digest_bot.services.extractor import ContentExtractor

logger = logging.getLogger(__name__)

_TRACKING_PREFIXES = ("utm_",)
_TRACKING_KEYS = frozenset({"gclid", "fbclid", "mc_cid", "mc_eid", "ref"})


def _is_tracking_param(key: str) -> bool:
    return key.startswith(_TRACKING_PREFIXES) or key in _TRACKING_KEYS


def normalize_url(url: str) -> str:
    """Drop the fragment and tracking query parameters from an article link."""
    parts = urlparse(url.strip())
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if not _is_tracking_param(key)]
    return urlunparse(parts._replace(fragment="", query=urlencode(query, doseq=True)))


def parse_entry_datetime(entry: dict[str, Any]) -> datetime | None:
    struct = entry.get("published_parsed") or entry.get("updated_parsed")
    if struct is not None:
        try:
            return datetime.fromtimestamp(calendar.timegm(struct), tz=timezone.utc)
        except (OverflowError, TypeError, ValueError):
            pass

    raw = entry.get("published") or entry.get("updated")
    if not raw:
        return None
    try:
        moment = parsedate_to_datetime(str(raw))
    except (TypeError, ValueError):
        return None
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def html_to_text(value: str) -> str:
    if not value:
        return ""
    if "<" not in value:
        return " ".join(value.split())
    return " ".join(BeautifulSoup(value, "lxml").get_text(" ").split())


def entry_snippet(entry: dict[str, Any]) -> str:
    contents = entry.get("content") or []
    if isinstance(contents, list):
        for item in contents:
            if isinstance(item, dict) and item.get("value"):
                return html_to_text(str(item["value"]))
    return html_to_text(str(entry.get("summary") or entry.get("description") or ""))


def is_recent(published_at: datetime, now: datetime, window: timedelta) -> bool:
    return published_at >= now - window


def load_sources(settings: Settings) -> list[FeedSource]:
    sources: list[FeedSource] = []
    if settings.sources_file:
        with open(settings.sources_file, "r", encoding="utf-8") as source_file:
            data = yaml.safe_load(source_file) or {}
        sources.extend(SourcesFile.model_validate(data).sources)

    known = {source.rss for source in sources}
    for url in settings.rss_feeds:
        if url not in known:
            sources.append(FeedSource(rss=url))
            known.add(url)
    return sources


class FeedAggregator:
    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        extractor: ContentExtractor | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.extractor = extractor or ContentExtractor(client, settings.page_fetch_timeout_seconds)
        self.errors: list[str] = []

    async def fetch_feed(self, source: FeedSource, now: datetime) -> list[Article]:
        headers = {"User-Agent": self.settings.user_agent}
        response = await self.client.get(source.rss, headers=headers, follow_redirects=True)
        response.raise_for_status()

        parsed = feedparser.parse(response.text)
        if parsed.bozo and not parsed.entries:
            raise ValueError(f"unparseable feed: {parsed.get('bozo_exception')}")

        source_name = source.name or str(parsed.feed.get("title") or "").strip() or urlparse(source.rss).netloc
        window = timedelta(days=self.settings.recency_window_days)
        entries = parsed.entries[: self.settings.max_items_per_feed]
        logger.info("Fetched %s items from %s", len(parsed.entries), source_name)

        articles: list[Article] = []
        for raw_entry in entries:
            entry = dict(raw_entry)
            title = str(entry.get("title") or "").strip()
            raw_link = str(entry.get("link") or "").strip()
            published_at = parse_entry_datetime(entry)
            if not title or not raw_link or published_at is None:
                continue
            if not is_recent(published_at, now, window):
                continue

            article = Article(
                title=title,
                link=normalize_url(raw_link),
                source=source_name,
                published_at=published_at,
                raw_snippet=entry_snippet(entry),
                description=html_to_text(str(entry.get("summary") or entry.get("description") or "")),
            )
            full_text = await self.extractor.fetch_full_text(article.link)
            if article.apply_enrichment(full_text):
                logger.debug("Enriched %s (%s chars)", article.title[:50], len(article.effective_content))
            articles.append(article)

        return articles

    async def collect_articles(self, sources: list[FeedSource], now: datetime | None = None) -> list[Article]:
        now = now or datetime.now(timezone.utc)
        self.errors = []
        all_articles: list[Article] = []

        for source in sources:
            try:
                source_articles = await self.fetch_feed(source, now)
            except Exception as exc:
                error = f"Feed fetch failed ({source.rss}): {exc}"
                logger.warning(error)
                self.errors.append(error)
                continue
            all_articles.extend(source_articles)

        logger.info("Collected %s recent articles from %s feeds", len(all_articles), len(sources))
        return all_articles
