from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from digest_bot.errors import DeliveryError
from digest_bot.schemas.article import DeliveryOutcome, DeliveryReport
from digest_bot.services.channel import MessageChannel
from digest_bot.services.digest import personalize

logger = logging.getLogger(__name__)


class DeliveryCoordinator:
    def __init__(
        self,
        channel: MessageChannel,
        delay_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.channel = channel
        self.delay_seconds = delay_seconds
        self.sleep = sleep

    async def deliver(self, message: str, recipients: list[str], personalized: bool = False) -> DeliveryReport:
        outcomes: list[DeliveryOutcome] = []
        text = personalize(message) if personalized else message

        for index, recipient in enumerate(recipients):
            if index and self.delay_seconds > 0:
                await self.sleep(self.delay_seconds)
            try:
                await self.channel.send(recipient, text)
            except DeliveryError as exc:
                logger.error("Failed to send digest to %s: %s", recipient, exc)
                outcomes.append(DeliveryOutcome(recipient=recipient, succeeded=False, error=str(exc)))
                continue
            logger.info("Digest sent (%s/%s) to %s", index + 1, len(recipients), recipient)
            outcomes.append(DeliveryOutcome(recipient=recipient, succeeded=True))

        report = DeliveryReport(outcomes=outcomes)
        logger.info("Delivery complete: %s sent, %s failed", report.sent, report.failed)
        return report

    async def broadcast(self, message: str, recipients: list[str]) -> DeliveryReport:
        return await self.deliver(message, recipients, personalized=len(recipients) > 1)

    async def reply(self, message: str, recipient: str) -> DeliveryReport:
        return await self.deliver(message, [recipient], personalized=False)
