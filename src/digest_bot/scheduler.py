from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time, timedelta, tzinfo
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


def next_run_at(now: datetime, send_time: time, tz: tzinfo) -> datetime:
    local_now = now.astimezone(tz)
    candidate = local_now.replace(hour=send_time.hour, minute=send_time.minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate += timedelta(days=1)
    return candidate


def seconds_until_next_run(now: datetime, send_time: time, tz: tzinfo) -> float:
    return next_run_at(now, send_time, tz).timestamp() - now.timestamp()


async def run_daily(
    send_time: time,
    tz: tzinfo,
    job: Callable[[], Awaitable[Any]],
    now: Callable[[], datetime] | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    max_runs: int | None = None,
) -> None:
    clock = now or (lambda: datetime.now(tz))
    runs = 0
    while max_runs is None or runs < max_runs:
        target = next_run_at(clock(), send_time, tz)
        delay = max(target.timestamp() - clock().timestamp(), 0.0)
        logger.info("Next scheduled digest at %s (in %.0fs)", target.isoformat(), delay)
        await sleep(delay)

        logger.info("Scheduled daily summary triggered")
        try:
            await job()
        except Exception:
            logger.exception("Scheduled digest run failed")
        runs += 1
