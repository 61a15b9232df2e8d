from __future__ import annotations

import logging
import re

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

NOISE_SELECTOR = (
    "script, style, nav, header, footer, aside, .advertisement, .ad, .sidebar, "
    ".related, .comments, .social-share, .newsletter-signup"
)

# Known article-body containers first, generic fallbacks last.
CONTENT_SELECTORS: tuple[str, ...] = (
    ".post-content",
    ".article-content",
    ".entry-content",
    ".content",
    ".story-body",
    "article .body",
    "article p",
    ".post-body",
    ".article-body",
    "main article",
    "main p",
    ".prose",
    ".rich-text",
)

MIN_SELECTOR_CHARS = 800
MIN_PARAGRAPH_CHARS = 50
MAX_CONTENT_CHARS = 4000

_WHITESPACE_RE = re.compile(r"\s+")
_NOISE_CHARS_RE = re.compile(r"[^\w\s.,!?;:()\-]")


def clean_text(text: str, limit: int = MAX_CONTENT_CHARS) -> str:
    collapsed = _WHITESPACE_RE.sub(" ", text)
    stripped = _NOISE_CHARS_RE.sub("", collapsed)
    return _WHITESPACE_RE.sub(" ", stripped).strip()[:limit]


def extract_main_text(html: str) -> str:
    soup = BeautifulSoup(html, "lxml")
    for element in soup.select(NOISE_SELECTOR):
        element.decompose()

    content = ""
    for selector in CONTENT_SELECTORS:
        elements = soup.select(selector)
        if not elements:
            continue
        candidate = " ".join(element.get_text(" ", strip=True) for element in elements).strip()
        if len(candidate) > MIN_SELECTOR_CHARS:
            content = candidate
            break

    if not content:
        paragraphs = [p.get_text(" ", strip=True) for p in soup.find_all("p")]
        content = " ".join(p for p in paragraphs if len(p) > MIN_PARAGRAPH_CHARS)

    return clean_text(content)


def is_html_response(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "").lower()
    if not content_type:
        return True
    return "html" in content_type


class ContentExtractor:
    def __init__(self, client: httpx.AsyncClient, timeout_seconds: float = 15.0) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds

    async def fetch_full_text(self, url: str) -> str | None:
        """Return cleaned article text for ``url``, or None when nothing usable came back."""
        try:
            response = await self.client.get(
                url,
                headers=BROWSER_HEADERS,
                timeout=self.timeout_seconds,
                follow_redirects=True,
            )
            response.raise_for_status()
        except Exception as exc:
            logger.warning("Could not fetch full content from %s: %s", url, exc)
            return None

        if not is_html_response(response):
            logger.debug("Skipping non-HTML page %s (%s)", url, response.headers.get("content-type"))
            return None

        try:
            text = extract_main_text(response.text)
        except Exception as exc:
            logger.warning("Could not parse %s: %s", url, exc)
            return None

        return text or None
