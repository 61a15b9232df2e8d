from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class MessageChannel(Protocol):
    async def send(self, recipient: str, text: str) -> None:
        """Deliver ``text`` to ``recipient`` or raise ``DeliveryError``."""
        ...


class ConsoleChannel:
    """Dry-run channel: messages go to the log instead of a chat."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, recipient: str, text: str) -> None:
        self.sent.append((recipient, text))
        logger.info("[dry-run] message for %s (%s chars):\n%s", recipient, len(text), text)
