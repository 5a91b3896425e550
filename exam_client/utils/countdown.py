import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def remaining_seconds(start_time: datetime, time_limit: int, now: datetime) -> int:
    """Seconds left before start_time + time_limit, never negative"""
    elapsed_ms = (now - start_time).total_seconds() * 1000
    return max(0, time_limit - int(elapsed_ms // 1000))


class Countdown:
    """
    One-second countdown towards a server-owned deadline.

    The deadline is start_time + time_limit. `remaining` is derived from the
    clock on construction and on resync(); between those it is decremented
    by tick(). When it reaches zero `on_expire` is awaited once.
    """

    def __init__(
        self,
        start_time: datetime,
        time_limit: int,
        on_expire: Callable[[], Awaitable[None]],
        clock: Optional[Clock] = None,
        interval: float = 1.0,
    ):
        self.start_time = start_time
        self.time_limit = time_limit
        self.interval = interval
        self._clock = clock or utc_now
        self._on_expire = on_expire
        self._expired = False
        self._task: Optional[asyncio.Task] = None
        self.remaining = remaining_seconds(start_time, time_limit, self._clock())

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def resync(self) -> int:
        """Re-derive remaining time from the wall clock (e.g. after a resume)"""
        self.remaining = remaining_seconds(
            self.start_time, self.time_limit, self._clock()
        )
        return self.remaining

    async def tick(self) -> int:
        if self._expired:
            return 0
        if self.remaining > 0:
            self.remaining -= 1
        if self.remaining <= 0:
            await self.expire()
        return self.remaining

    async def expire(self):
        if self._expired:
            return
        self._expired = True
        logger.info("Countdown reached zero")
        await self._on_expire()

    def start(self) -> None:
        """Run tick() once per interval on the current event loop"""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self):
        if self.remaining <= 0:
            await self.expire()
            return
        while not self._expired:
            await asyncio.sleep(self.interval)
            await self.tick()

    def cancel(self) -> None:
        task = self._task
        self._task = None
        # on_expire may tear the countdown down from inside its own task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
