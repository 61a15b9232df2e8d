import pytest

from digest_bot.errors import DeliveryError
from digest_bot.services.delivery import DeliveryCoordinator
from digest_bot.services.digest import GREETING


class _FakeChannel:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.sent: list[tuple[str, str]] = []

    async def send(self, recipient: str, text: str) -> None:
        if recipient in self.failing:
            raise DeliveryError(recipient, "blocked by user")
        self.sent.append((recipient, text))


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.mark.asyncio
async def test_failure_for_one_recipient_does_not_stop_others() -> None:
    channel = _FakeChannel(failing={"2"})
    coordinator = DeliveryCoordinator(channel, delay_seconds=0)

    report = await coordinator.broadcast("digest", ["1", "2", "3"])

    assert [recipient for recipient, _ in channel.sent] == ["1", "3"]
    assert (report.sent, report.failed, report.total) == (2, 1, 3)
    assert report.sent + report.failed == report.total
    failed = [outcome for outcome in report.outcomes if not outcome.succeeded]
    assert failed[0].recipient == "2" and "blocked" in (failed[0].error or "")


@pytest.mark.asyncio
async def test_total_failure_is_reported_not_raised() -> None:
    coordinator = DeliveryCoordinator(_FakeChannel(failing={"1", "2"}), delay_seconds=0)

    report = await coordinator.broadcast("digest", ["1", "2"])

    assert (report.sent, report.failed, report.total) == (0, 2, 2)


@pytest.mark.asyncio
async def test_broadcast_greets_only_when_several_recipients() -> None:
    channel = _FakeChannel()
    coordinator = DeliveryCoordinator(channel, delay_seconds=0)

    await coordinator.broadcast("digest", ["1", "2"])
    await coordinator.broadcast("digest", ["3"])

    texts = dict(channel.sent)
    assert texts["1"].startswith(GREETING) and texts["1"].endswith("digest")
    assert texts["3"] == "digest"


@pytest.mark.asyncio
async def test_reply_is_unprefixed_single_recipient() -> None:
    channel = _FakeChannel()
    report = await DeliveryCoordinator(channel, delay_seconds=0).reply("digest", "9")

    assert channel.sent == [("9", "digest")]
    assert report.total == 1


@pytest.mark.asyncio
async def test_sends_are_paced() -> None:
    sleeps = _Sleeps()
    coordinator = DeliveryCoordinator(_FakeChannel(), delay_seconds=2.0, sleep=sleeps)

    await coordinator.broadcast("digest", ["1", "2", "3"])

    assert sleeps.delays == [2.0, 2.0]
