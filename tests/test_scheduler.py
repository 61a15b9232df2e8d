from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from digest_bot.scheduler import next_run_at, run_daily, seconds_until_next_run


def test_next_run_later_today() -> None:
    now = datetime(2026, 10, 18, 7, 30, tzinfo=timezone.utc)
    assert seconds_until_next_run(now, time(9, 0), timezone.utc) == 90 * 60


def test_next_run_rolls_over_to_tomorrow() -> None:
    now = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
    target = next_run_at(now, time(9, 0), timezone.utc)
    assert target == datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def test_next_run_respects_configured_timezone() -> None:
    berlin = ZoneInfo("Europe/Berlin")
    now = datetime(2026, 7, 1, 6, 0, tzinfo=timezone.utc)  # 08:00 in Berlin (CEST)
    assert seconds_until_next_run(now, time(9, 0), berlin) == 3600


@pytest.mark.asyncio
async def test_run_daily_sleeps_then_runs_job() -> None:
    delays: list[float] = []
    runs: list[int] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    async def job() -> None:
        runs.append(1)
        raise RuntimeError("boom")

    await run_daily(
        time(9, 0),
        timezone.utc,
        job,
        now=lambda: datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc),
        sleep=fake_sleep,
        max_runs=2,
    )

    assert delays == [3600, 3600]
    assert runs == [1, 1]
