from __future__ import annotations

import logging
import re

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_BOT_TOKEN_RE = re.compile(r"\d{6,}:[A-Za-z0-9_-]{20,}")
_LONG_DIGITS_RE = re.compile(r"\d{7,}")


def redact(text: str) -> str:
    text = _BOT_TOKEN_RE.sub("[REDACTED]", text)
    return _LONG_DIGITS_RE.sub(lambda match: f"{match.group()[:2]}****{match.group()[-2:]}", text)


class RedactingFilter(logging.Filter):
    """Masks bot tokens and chat ids before a record is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = None
        return True


def setup_logging(verbose: bool = False) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler.addFilter(RedactingFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # httpx logs full request URLs, and Telegram URLs embed the bot token.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
