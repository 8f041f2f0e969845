"""
Daily tick source for the reminder engine.

Fires once per day at a fixed wall-clock time in the configured timezone.
Overlapping ticks are suppressed by the engine itself, so a tick that
overruns never runs concurrently with the next one.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time, timedelta, tzinfo
from typing import Awaitable, Callable

from friendcrm.config import Settings
from friendcrm.services.dispatch import ReminderEngine

logger = logging.getLogger(__name__)


def next_fire_time(now: datetime, at: time, tz: tzinfo) -> datetime:
    """Next occurrence of ``at`` in ``tz`` strictly after ``now``."""
    local = now.astimezone(tz)
    candidate = datetime.combine(local.date(), at, tzinfo=tz)
    if candidate <= local:
        candidate = datetime.combine(local.date() + timedelta(days=1), at, tzinfo=tz)
    return candidate


class DailyScheduler:
    def __init__(
        self,
        engine: ReminderEngine,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.engine = engine
        self.settings = settings
        self._clock = clock
        self._sleep = sleep
        self._current: asyncio.Task | None = None

    def now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(self.settings.tz)

    async def run_forever(self) -> None:
        logger.info("Reminder scheduler started (daily at %s %s)", self.settings.tick_time, self.settings.timezone)
        last_fire: datetime | None = None
        try:
            while True:
                now = self.now()
                # a wake-up that reads slightly early must not schedule the same fire time again
                after = now if last_fire is None or now > last_fire else last_fire
                fire_at = next_fire_time(after, self.settings.tick_at, self.settings.tz)
                logger.info("Next reminder tick at %s", fire_at.isoformat())
                await self._sleep(max(fire_at.timestamp() - now.timestamp(), 0.0))
                last_fire = fire_at
                self._current = asyncio.create_task(self.tick(max(self.now(), fire_at)))
        finally:
            if self._current is not None and not self._current.done():
                self._current.cancel()
            logger.info("Reminder scheduler stopped")

    async def tick(self, now: datetime) -> None:
        try:
            await self.engine.run_tick(now)
        except Exception:
            logger.exception("Reminder tick failed")
