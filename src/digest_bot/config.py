from __future__ import annotations

import os
import re
from datetime import time
from functools import lru_cache
from typing import Annotated, Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

AIProvider = Literal["openai", "groq", "perplexity", "openrouter", "claude", "gemini"]

_CHAT_ID_RE = re.compile(r"^(-?\d+|@[A-Za-z][A-Za-z0-9_]{3,})$")
_SEND_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

_PROVIDER_KEY_FIELDS: dict[str, str] = {
    "openai": "openai_api_key",
    "groq": "groq_api_key",
    "perplexity": "perplexity_api_key",
    "openrouter": "openrouter_api_key",
    "claude": "anthropic_api_key",
    "gemini": "gemini_api_key",
}


def _split_csv(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class Settings(BaseSettings):
    rss_feeds: Annotated[list[str], NoDecode] = Field(default_factory=list)
    sources_file: str | None = None

    ai_provider: AIProvider = "openai"
    summary_model: str | None = None
    openai_api_key: str | None = None
    groq_api_key: str | None = None
    perplexity_api_key: str | None = None
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    anthropic_api_key: str | None = None
    gemini_api_key: str | None = None

    telegram_bot_token: str | None = None
    telegram_parse_mode: str = "HTML"
    telegram_poll_timeout_seconds: int = 30
    authorized_ids: Annotated[list[str], NoDecode] = Field(default_factory=list)
    mailing_list: Annotated[list[str], NoDecode] = Field(default_factory=list)
    security_alerts_enabled: bool = True

    daily_send_time: str = "09:00"
    schedule_timezone: str = "UTC"

    langsmith_api_key: str | None = None
    langsmith_project: str = "tech-digest-bot"
    langsmith_tracing: bool = False

    request_timeout_seconds: int = 20
    page_fetch_timeout_seconds: int = 15
    max_items_per_feed: int = 5
    recency_window_days: int = 2
    max_summaries_per_run: int = 10
    summarize_delay_seconds: float = 1.5
    send_delay_seconds: float = 2.0
    user_agent: str = "TechDigestBot/0.1"

    reconnect_max_attempts: int = 5
    reconnect_base_delay_seconds: float = 5.0
    reconnect_max_delay_seconds: float = 300.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("rss_feeds", mode="before")
    @classmethod
    def _parse_feeds(cls, value: Any) -> Any:
        return _split_csv(value)

    @field_validator("authorized_ids", "mailing_list", mode="before")
    @classmethod
    def _parse_chat_ids(cls, value: Any) -> Any:
        ids = _split_csv(value)
        if isinstance(ids, list):
            malformed = [item for item in ids if not _CHAT_ID_RE.match(str(item))]
            if malformed:
                raise ValueError(f"malformed chat ids: {', '.join(map(str, malformed))}")
        return ids

    @field_validator("daily_send_time")
    @classmethod
    def _check_send_time(cls, value: str) -> str:
        if not _SEND_TIME_RE.match(value.strip()):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return value.strip()

    @field_validator("schedule_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @property
    def send_time(self) -> time:
        hour, minute = self.daily_send_time.split(":", 1)
        return time(int(hour), int(minute))

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.schedule_timezone)

    @property
    def recipients(self) -> list[str]:
        return list(self.mailing_list or self.authorized_ids)

    @property
    def admin_id(self) -> str | None:
        return self.authorized_ids[0] if self.authorized_ids else None

    def provider_api_key(self) -> str | None:
        value = getattr(self, _PROVIDER_KEY_FIELDS[self.ai_provider])
        return value.strip() if value and value.strip() else None

    def missing_required_runtime_fields(self, dry_run: bool, serve: bool = False) -> list[str]:
        missing: list[str] = []

        if not self.rss_feeds and not self.sources_file:
            missing.append("RSS_FEEDS")

        if not dry_run:
            if self.provider_api_key() is None:
                missing.append(_PROVIDER_KEY_FIELDS[self.ai_provider].upper())
            if not (self.telegram_bot_token or "").strip():
                missing.append("TELEGRAM_BOT_TOKEN")
            if not self.recipients:
                missing.append("MAILING_LIST")

        if serve and not self.authorized_ids:
            missing.append("AUTHORIZED_IDS")

        return missing


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_langsmith_env(settings: Settings) -> None:
    if settings.langsmith_api_key:
        os.environ["LANGSMITH_API_KEY"] = settings.langsmith_api_key
    os.environ["LANGSMITH_PROJECT"] = settings.langsmith_project
    os.environ["LANGSMITH_TRACING"] = "true" if settings.langsmith_tracing else "false"
