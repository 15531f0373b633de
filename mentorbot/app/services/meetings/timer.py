# mentorbot/app/services/meetings/timer.py
"""
In-meeting countdown.

Elapsed time is recomputed from the wall clock on every tick
(now − scheduled_at), so a suspended process catches up on resume.

Fires:
- on_warning once, when 0 < remaining <= WARNING_SECONDS
- on_time_up once, when elapsed >= allotted; the loop stops after it

Runs as an asyncio task; stop() cancels it.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

TICK_INTERVAL = 1  # seconds between ticks
WARNING_SECONDS = 120

Callback = Callable[[], Union[None, Awaitable[None]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MeetingTimer:

    def __init__(
        self,
        scheduled_at: datetime,
        duration_minutes: int = 60,
        on_warning: Optional[Callback] = None,
        on_time_up: Optional[Callback] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.scheduled_at = scheduled_at
        self.total_seconds = duration_minutes * 60
        self.on_warning = on_warning
        self.on_time_up = on_time_up
        self.clock = clock

        self.elapsed = 0
        self.has_warned = False
        self.is_finished = False
        self._stopped = False
        self._task: Optional[asyncio.Task] = None

    @property
    def remaining(self) -> int:
        return max(self.total_seconds - self.elapsed, 0)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self, now: Optional[datetime] = None) -> None:
        """Recompute elapsed from the clock and fire due events."""
        if self.is_finished:
            return

        now = now or self.clock()
        self.elapsed = max(int((now - self.scheduled_at).total_seconds()), 0)

        if self.elapsed >= self.total_seconds:
            self.is_finished = True
            logger.info(f"[MEETING] Time is up (scheduled {self.scheduled_at.isoformat()})")
            await self._fire(self.on_time_up)
            return

        if not self.has_warned and 0 < self.remaining <= WARNING_SECONDS:
            self.has_warned = True
            await self._fire(self.on_warning)

    def start(self) -> asyncio.Task:
        """Start the per-second loop in the running event loop."""
        if not self.is_running:
            self._stopped = False
            self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self) -> None:
        """Cancel the loop. Safe to call more than once, also from a callback."""
        self._stopped = True
        task, self._task = self._task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        try:
            while not self.is_finished and not self._stopped:
                try:
                    await self.tick()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("[MEETING] timer tick error")
                if self.is_finished or self._stopped:
                    break
                await asyncio.sleep(TICK_INTERVAL)
        except asyncio.CancelledError:
            logger.info("[MEETING] timer cancelled")
            raise

    @staticmethod
    async def _fire(callback: Optional[Callback]) -> None:
        if callback is None:
            return
        result = callback()
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def remaining_display(self) -> str:
        minutes, seconds = divmod(self.remaining, 60)
        return f"{minutes}:{seconds:02d}"

    def progress(self) -> float:
        if not self.total_seconds:
            return 1.0
        return min(self.elapsed / self.total_seconds, 1.0)
