import asyncio
from types import SimpleNamespace

import httpx
import pytest

from digest_bot import bot as bot_module
from digest_bot.bot import DigestBot
from digest_bot.config import Settings
from digest_bot.errors import ChannelUnauthorizedError
from digest_bot.services.connection import ConnectionState, DisconnectReason


class _FakeTelegram:
    def __init__(self, me_results: list[object] | None = None, updates: list[dict] | None = None) -> None:
        self.me_results = list(me_results or [{"username": "digest_bot"}])
        self.updates = updates or []
        self.offsets: list[int | None] = []
        self.sent: list[tuple[str, str]] = []

    async def get_me(self) -> dict:
        result = self.me_results.pop(0) if len(self.me_results) > 1 else self.me_results[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def get_updates(self, offset: int | None, poll_timeout: int) -> list[dict]:
        self.offsets.append(offset)
        updates, self.updates = self.updates, []
        return updates

    async def send(self, recipient: str, text: str) -> None:
        self.sent.append((recipient, text))


def _bot(channel: _FakeTelegram, **overrides) -> DigestBot:
    settings = Settings(
        _env_file=None,
        authorized_ids=["111111111"],
        mailing_list=["222222222"],
        reconnect_base_delay_seconds=0,
        **overrides,
    )
    context = SimpleNamespace(sources=[], settings=settings)
    return DigestBot(settings, context, channel)


def _update(update_id: int, sender: int, text: str) -> dict:
    return {"update_id": update_id, "message": {"text": text, "chat": {"id": sender, "type": "private"}, "from": {"id": sender}}}


@pytest.mark.asyncio
async def test_ready_message_is_sent_only_on_first_connection() -> None:
    channel = _FakeTelegram()
    bot = _bot(channel)

    assert await bot.ensure_connected() is True
    bot.connection.mark_disconnected(DisconnectReason.NETWORK_ERROR)
    assert await bot.ensure_connected() is True

    ready = [text for recipient, text in channel.sent if recipient == "111111111"]
    assert len(ready) == 1 and "Ready" in ready[0]
    assert bot.connection.snapshot().bot_username == "digest_bot"


@pytest.mark.asyncio
async def test_network_errors_are_retried_until_connected() -> None:
    failure = httpx.ConnectError("offline")
    channel = _FakeTelegram(me_results=[failure, failure, {"username": "digest_bot"}])
    bot = _bot(channel)

    assert await bot.ensure_connected() is True
    assert bot.connection.snapshot().state is ConnectionState.CONNECTED


@pytest.mark.asyncio
async def test_unauthorized_token_stops_reconnecting() -> None:
    channel = _FakeTelegram(me_results=[ChannelUnauthorizedError("bad token")])
    bot = _bot(channel)

    assert await bot.ensure_connected() is False
    snapshot = bot.connection.snapshot()
    assert snapshot.state is ConnectionState.DISCONNECTED
    assert snapshot.reason is DisconnectReason.UNAUTHORIZED


@pytest.mark.asyncio
async def test_reconnect_gives_up_after_max_attempts() -> None:
    channel = _FakeTelegram(me_results=[httpx.ConnectError("offline")])
    bot = _bot(channel, reconnect_max_attempts=2)

    assert await bot.ensure_connected() is False
    assert bot.connection.snapshot().reconnect_attempts == 2


@pytest.mark.asyncio
async def test_poll_once_advances_offset_and_routes_commands() -> None:
    channel = _FakeTelegram(updates=[_update(40, 111111111, "!help"), _update(41, 999999999, "!test")])
    bot = _bot(channel)

    assert await bot.poll_once() == 2
    await bot.poll_once()

    assert channel.offsets == [None, 42]
    assert channel.sent[0][0] == "111111111" and "Available Commands" in channel.sent[0][1]
    assert "SECURITY ALERT" in channel.sent[1][1]


@pytest.mark.asyncio
async def test_digest_runs_do_not_overlap(monkeypatch: pytest.MonkeyPatch) -> None:
    active = 0
    peak = 0

    async def fake_pipeline(context, reply_to=None):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0)
        active -= 1
        return {"reply_to": reply_to}

    monkeypatch.setattr(bot_module, "run_pipeline", fake_pipeline)
    bot = _bot(_FakeTelegram())

    results = await asyncio.gather(bot.run_digest(), bot.run_digest("111111111"))

    assert peak == 1
    assert [result["reply_to"] for result in results] == [None, "111111111"]
