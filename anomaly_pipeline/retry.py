from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffSchedule:
    """
    Fixed wait-and-retry schedule.

    delays_s[n-1] is the wait after failed attempt n (the last entry repeats if
    max_attempts outruns the list). max_attempts counts the first call.
    """

    delays_s: Tuple[float, ...]
    max_attempts: int

    def delay_after(self, attempt: int) -> float:
        if not self.delays_s:
            return 0.0
        return self.delays_s[min(attempt, len(self.delays_s)) - 1]


async def retry_async(
    op: Callable[[], Awaitable[T]],
    schedule: BackoffSchedule,
    retry_on: Callable[[Exception], bool],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "call",
) -> T:
    """
    Run op until it succeeds, raises something retry_on rejects, or the schedule
    is exhausted; in the last two cases the exception propagates unchanged.
    Cancellation is never retried.
    """
    attempt = 1
    while True:
        try:
            return await op()
        except Exception as e:
            if not retry_on(e) or attempt >= schedule.max_attempts:
                raise
            delay = schedule.delay_after(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.0fms",
                label, attempt, schedule.max_attempts, e, delay * 1000.0,
            )
        await sleep(delay)
        attempt += 1
