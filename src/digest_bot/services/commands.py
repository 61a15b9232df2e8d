from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from digest_bot.config import Settings
from digest_bot.errors import DeliveryError
from digest_bot.services.channel import MessageChannel
from digest_bot.services.connection import ConnectionManager

logger = logging.getLogger(__name__)

COMMAND_PREFIXES = ("!", "/")


class Command(str, Enum):
    TEST = "test"
    STATUS = "status"
    LIST = "list"
    HELP = "help"


@dataclass(frozen=True)
class InboundMessage:
    sender_id: str
    chat_id: str
    text: str
    chat_type: str = "private"

    @classmethod
    def from_update(cls, update: dict[str, Any]) -> InboundMessage | None:
        message = update.get("message")
        if not isinstance(message, dict):
            return None
        chat = message.get("chat") or {}
        sender = message.get("from") or {}
        text = message.get("text")
        if not text or "id" not in chat or "id" not in sender:
            return None
        return cls(
            sender_id=str(sender["id"]),
            chat_id=str(chat["id"]),
            text=str(text).strip(),
            chat_type=str(chat.get("type") or "private"),
        )


def is_command(text: str) -> bool:
    return text.startswith(COMMAND_PREFIXES)


def parse_command(text: str) -> Command | None:
    """Map ``!status`` / ``/status@MyBot`` to a Command; None if unknown or not a command."""
    if not is_command(text):
        return None
    word = text[1:].split(maxsplit=1)[0] if len(text) > 1 else ""
    word = word.split("@", 1)[0].lower()
    try:
        return Command(word)
    except ValueError:
        return None


def mask_id(value: str) -> str:
    digits = value.lstrip("-@")
    if len(digits) <= 4:
        return "****"
    return f"{value[: len(value) - len(digits) + 2]}****{digits[-2:]}"


def help_text() -> str:
    return (
        "❓ <b>Available Commands</b>\n\n"
        "• <code>!test</code> - Manual summary\n"
        "• <code>!status</code> - Bot status\n"
        "• <code>!list</code> - Show mailing list\n\n"
        "<i>Only admins can use commands</i>"
    )


def ready_text(settings: Settings) -> str:
    return (
        "🤖 <b>Digest Bot is Ready!</b> 🚀\n\n"
        f"👥 <b>Mailing List:</b> {len(settings.recipients)} recipients\n"
        f"⏰ <b>Daily Summary:</b> {settings.daily_send_time} {settings.schedule_timezone}\n\n"
        f"{help_text()}"
    )


def security_alert_text(alert_type: str, sender_id: str, action: str, at: datetime | None = None) -> str:
    at = at or datetime.now(timezone.utc)
    return (
        "🚨 <b>SECURITY ALERT</b>\n\n"
        f"⚠️ <b>Type:</b> {alert_type}\n"
        f"👤 <b>Sender:</b> {mask_id(sender_id)}\n"
        f"🕒 <b>Time:</b> {at:%Y-%m-%d %H:%M:%S %Z}\n"
        f"📋 <b>Action:</b> {action[:80]}"
    )


def format_uptime(started_at: datetime, now: datetime) -> str:
    seconds = max(int((now - started_at).total_seconds()), 0)
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


Handler = Callable[[InboundMessage], Awaitable[None]]


class CommandRouter:
    def __init__(
        self,
        settings: Settings,
        channel: MessageChannel,
        connection: ConnectionManager,
        run_digest: Callable[[str], Awaitable[Any]],
        feed_count: int,
        started_at: datetime | None = None,
    ) -> None:
        self.settings = settings
        self.channel = channel
        self.connection = connection
        self.run_digest = run_digest
        self.feed_count = feed_count
        self.started_at = started_at or datetime.now(timezone.utc)
        self.handlers: dict[Command, Handler] = {
            Command.TEST: self._handle_test,
            Command.STATUS: self._handle_status,
            Command.LIST: self._handle_list,
            Command.HELP: self._handle_help,
        }

    def is_authorized(self, sender_id: str) -> bool:
        return sender_id in self.settings.authorized_ids

    async def handle(self, message: InboundMessage) -> Command | None:
        if message.chat_type != "private":
            return None

        if not self.is_authorized(message.sender_id):
            logger.warning("Unauthorized message from %s dropped", mask_id(message.sender_id))
            await self._alert_admin("UNAUTHORIZED_ACCESS", message)
            return None

        if not is_command(message.text):
            return None

        command = parse_command(message.text) or Command.HELP
        logger.info("Command %s from %s", command.value, mask_id(message.sender_id))
        await self.handlers[command](message)
        return command

    async def _reply(self, chat_id: str, text: str) -> None:
        try:
            await self.channel.send(chat_id, text)
        except DeliveryError as exc:
            logger.error("Failed to reply to %s: %s", mask_id(chat_id), exc)

    async def _alert_admin(self, alert_type: str, message: InboundMessage) -> None:
        admin = self.settings.admin_id
        if not self.settings.security_alerts_enabled or admin is None:
            return
        text = security_alert_text(alert_type, message.sender_id, f'Attempted to use: "{message.text}"')
        await self._reply(admin, text)

    async def _handle_test(self, message: InboundMessage) -> None:
        await self._reply(message.chat_id, "🚀 <b>Generating test summary...</b>\n<i>This may take a moment</i>")
        await self.run_digest(message.chat_id)

    async def _handle_status(self, message: InboundMessage) -> None:
        snapshot = self.connection.snapshot()
        now = datetime.now(timezone.utc)
        text = (
            "📊 <b>Bot Status</b>\n\n"
            f"✅ <b>Connection:</b> {snapshot.state.value}\n"
            f"⏱️ <b>Uptime:</b> {format_uptime(self.started_at, now)}\n"
            f"👥 <b>Mailing List:</b> {len(self.settings.recipients)} recipients\n"
            f"🔐 <b>Admin Users:</b> {len(self.settings.authorized_ids)}\n"
            f"📡 <b>RSS Feeds:</b> {self.feed_count}\n"
            f"⏰ <b>Next Summary:</b> {self.settings.daily_send_time} {self.settings.schedule_timezone} daily\n"
            f"🤖 <b>AI Provider:</b> {self.settings.ai_provider.upper()}"
        )
        await self._reply(message.chat_id, text)

    async def _handle_list(self, message: InboundMessage) -> None:
        recipients = self.settings.recipients
        lines = ["👥 <b>Mailing List</b>", "", f"📊 <b>Total Recipients:</b> {len(recipients)}", ""]
        lines.extend(f"{index}. {mask_id(chat_id)}" for index, chat_id in enumerate(recipients, start=1))
        lines.extend(["", "<b>Admin Users:</b>"])
        lines.extend(
            f"{index}. {mask_id(chat_id)} 🔐" for index, chat_id in enumerate(self.settings.authorized_ids, start=1)
        )
        lines.extend(["", "<i>Chat ids are masked</i>"])
        await self._reply(message.chat_id, "\n".join(lines))

    async def _handle_help(self, message: InboundMessage) -> None:
        await self._reply(message.chat_id, help_text())
