from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import httpx

from digest_bot.config import Settings
from digest_bot.errors import ChannelConflictError, ChannelUnauthorizedError, DeliveryError
from digest_bot.graph.context import PipelineContext
from digest_bot.graph.state import AgentState
from digest_bot.graph.workflow import run_pipeline
from digest_bot.scheduler import run_daily
from digest_bot.services.commands import CommandRouter, InboundMessage, ready_text
from digest_bot.services.connection import (
    ConnectionManager,
    ConnectionState,
    DisconnectReason,
    ReconnectPolicy,
)
from digest_bot.services.telegram_client import TelegramChannel

logger = logging.getLogger(__name__)


class DigestBot:
    """Long-running process: keeps the channel connected, answers commands, runs the daily digest."""

    def __init__(self, settings: Settings, context: PipelineContext, channel: TelegramChannel) -> None:
        self.settings = settings
        self.context = context
        self.channel = channel
        self.connection = ConnectionManager(
            ReconnectPolicy(
                max_attempts=settings.reconnect_max_attempts,
                base_delay_seconds=settings.reconnect_base_delay_seconds,
                max_delay_seconds=settings.reconnect_max_delay_seconds,
            )
        )
        self.started_at = datetime.now(timezone.utc)
        self.router = CommandRouter(
            settings,
            channel,
            self.connection,
            run_digest=self.run_digest,
            feed_count=len(context.sources),
            started_at=self.started_at,
        )
        self._run_lock = asyncio.Lock()
        self._offset: int | None = None

    async def run_digest(self, reply_to: str | None = None) -> AgentState:
        async with self._run_lock:
            logger.info("Starting %s", "on-demand digest" if reply_to else "daily digest")
            return await run_pipeline(self.context, reply_to=reply_to)

    async def connect(self) -> bool:
        """One pairing attempt; records the outcome on the connection manager."""
        try:
            me = await self.channel.get_me()
        except ChannelUnauthorizedError as exc:
            logger.error("Telegram rejected the bot token: %s", exc)
            self.connection.mark_disconnected(DisconnectReason.UNAUTHORIZED)
            return False
        except httpx.HTTPError as exc:
            logger.warning("Telegram unreachable: %s", exc)
            self.connection.mark_disconnected(DisconnectReason.NETWORK_ERROR)
            return False

        first = self.connection.mark_connected(me.get("username"))
        if first:
            await self._announce_ready()
        return True

    async def _announce_ready(self) -> None:
        text = ready_text(self.settings)
        for chat_id in self.settings.authorized_ids:
            try:
                await self.channel.send(chat_id, text)
            except DeliveryError as exc:
                logger.error("Error sending ready message: %s", exc)

    async def ensure_connected(self) -> bool:
        """Connect, following the reconnect policy; False once it gives up."""
        while True:
            snapshot = self.connection.snapshot()
            if snapshot.state is ConnectionState.CONNECTED:
                return True
            if snapshot.state is ConnectionState.AWAITING_PAIRING:
                if await self.connect():
                    return True
                continue

            delay = self.connection.next_reconnect_delay()
            if delay is None:
                logger.error("Giving up on the channel connection (%s)", snapshot.reason)
                return False
            logger.info("Reconnecting in %.0fs", delay)
            await asyncio.sleep(delay)
            self.connection.begin_reconnect()

    async def poll_once(self) -> int:
        updates = await self.channel.get_updates(self._offset, self.settings.telegram_poll_timeout_seconds)
        for update in updates:
            self._offset = int(update["update_id"]) + 1
            message = InboundMessage.from_update(update)
            if message is None:
                continue
            try:
                await self.router.handle(message)
            except Exception:
                logger.exception("Error processing message")
        return len(updates)

    async def poll_forever(self) -> None:
        while await self.ensure_connected():
            try:
                await self.poll_once()
            except ChannelConflictError as exc:
                logger.warning("Update polling conflict: %s", exc)
                self.connection.mark_disconnected(DisconnectReason.CONFLICT)
            except ChannelUnauthorizedError:
                self.connection.mark_disconnected(DisconnectReason.UNAUTHORIZED)
            except httpx.HTTPError as exc:
                logger.warning("Update polling failed: %s", exc)
                self.connection.mark_disconnected(DisconnectReason.NETWORK_ERROR)

    async def serve(self) -> None:
        logger.info(
            "Digest bot started | recipients=%s admins=%s feeds=%s",
            len(self.settings.recipients),
            len(self.settings.authorized_ids),
            len(self.context.sources),
        )
        scheduler = asyncio.create_task(
            run_daily(self.settings.send_time, self.settings.tz, self.run_digest),
            name="daily-digest",
        )
        try:
            await self.poll_forever()
        finally:
            scheduler.cancel()
            await asyncio.gather(scheduler, return_exceptions=True)
            if self.connection.snapshot().state is ConnectionState.CONNECTED:
                self.connection.mark_disconnected(DisconnectReason.SHUTDOWN)

