from __future__ import annotations

import logging

from digest_bot.schemas.article import Article

logger = logging.getLogger(__name__)

TOPIC_KEYWORDS: tuple[str, ...] = (
    # AI / ML
    "artificial intelligence",
    "machine learning",
    "deep learning",
    "neural network",
    "transformer",
    "llm",
    "large language model",
    "gpt",
    "claude",
    "gemini",
    "chatgpt",
    "openai",
    "anthropic",
    "google ai",
    "microsoft ai",
    "nvidia ai",
    "ai model",
    "generative ai",
    "computer vision",
    "natural language",
    "reinforcement learning",
    "diffusion model",
    "stable diffusion",
    "midjourney",
    "dall-e",
    # software engineering
    "software",
    "programming",
    "developer",
    "coding",
    "framework",
    "library",
    "javascript",
    "python",
    "react",
    "node.js",
    "typescript",
    "api",
    "database",
    "cloud computing",
    "aws",
    "azure",
    "google cloud",
    "kubernetes",
    "docker",
    "microservices",
    "devops",
    "ci/cd",
    "github",
    "open source",
    "sdk",
    "web development",
    "mobile development",
    "backend",
    "frontend",
    "full stack",
    "algorithm",
    "data structure",
    "software engineering",
    "tech stack",
    "version control",
    "agile",
    "scrum",
    "software architecture",
    # tech industry
    "startup",
    "funding",
    "venture capital",
    "ipo",
    "acquisition",
    "merger",
    "tech company",
    "silicon valley",
    "unicorn",
    "valuation",
    "investment",
    "saas",
    "platform",
    "ecosystem",
    "developer tools",
    "enterprise software",
)

TITLE_SIGNAL_TERMS: tuple[str, ...] = (
    "ai",
    "artificial intelligence",
    "machine learning",
    "software",
    "developer",
    "programming",
    "code",
    "app",
    "platform",
    "tech",
    "startup",
    "api",
)

MIN_KEYWORD_MATCHES = 2


def count_keyword_matches(text: str) -> int:
    lowered = text.lower()
    return sum(1 for keyword in TOPIC_KEYWORDS if keyword in lowered)


def title_has_signal(title: str) -> bool:
    lowered = title.lower()
    return any(term in lowered for term in TITLE_SIGNAL_TERMS)


def is_relevant(title: str, content: str, description: str = "") -> bool:
    # Plain substring matching, so "ai" also hits "said" or "maintain".
    text = f"{title} {content or ''} {description or ''}"
    return count_keyword_matches(text) >= MIN_KEYWORD_MATCHES or title_has_signal(title)


def filter_relevant(articles: list[Article]) -> list[Article]:
    kept: list[Article] = []
    for article in articles:
        if is_relevant(article.title, article.effective_content, article.description):
            logger.debug("Relevant: %s", article.title[:60])
            kept.append(article)
        else:
            logger.debug("Filtered out: %s", article.title[:60])
    return kept
