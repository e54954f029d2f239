"""Delayed events owned by the screen that scheduled them."""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

import structlog


logger = structlog.get_logger()


TimerCallback = Callable[[], Awaitable[object]]


@dataclass
class ScheduledEvent:
    """A pending delayed event."""

    event_id: str
    screen_id: Optional[str]
    delay: float
    timer_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self.task is not None and not self.task.done()


class ScreenTimers:
    """
    Timers keyed by the screen that armed them.

    Leaving a screen cancels every timer it armed. A timer is removed from
    the registry before its callback runs, so the callback may navigate
    without canceling itself.
    """

    def __init__(self):
        self._timers: Dict[str, ScheduledEvent] = {}

    def schedule(
        self,
        event_id: str,
        screen_id: Optional[str],
        delay: float,
        callback: TimerCallback,
    ) -> ScheduledEvent:
        scheduled = ScheduledEvent(event_id=event_id, screen_id=screen_id, delay=delay)
        scheduled.task = asyncio.create_task(self._fire(scheduled, callback))
        self._timers[scheduled.timer_id] = scheduled

        logger.debug(
            "event_scheduled",
            event_id=event_id,
            screen_id=screen_id,
            delay=delay,
        )
        return scheduled

    async def _fire(self, scheduled: ScheduledEvent, callback: TimerCallback) -> None:
        await asyncio.sleep(scheduled.delay)
        self._timers.pop(scheduled.timer_id, None)
        try:
            await callback()
        except Exception as e:
            logger.error(
                "delayed_event_failed",
                event_id=scheduled.event_id,
                screen_id=scheduled.screen_id,
                error=str(e),
            )

    def cancel_screen(self, screen_id: Optional[str]) -> int:
        """Cancel every pending timer armed by a screen."""
        canceled = 0
        for timer_id, scheduled in list(self._timers.items()):
            if scheduled.screen_id == screen_id:
                self._cancel(timer_id, scheduled)
                canceled += 1

        if canceled:
            logger.debug("screen_timers_canceled", screen_id=screen_id, count=canceled)
        return canceled

    def cancel_all(self) -> int:
        canceled = 0
        for timer_id, scheduled in list(self._timers.items()):
            self._cancel(timer_id, scheduled)
            canceled += 1
        return canceled

    def _cancel(self, timer_id: str, scheduled: ScheduledEvent) -> None:
        self._timers.pop(timer_id, None)
        if scheduled.task is not None and not scheduled.task.done():
            scheduled.task.cancel()

    def pending_for(self, screen_id: Optional[str]) -> int:
        return sum(1 for s in self._timers.values() if s.screen_id == screen_id)

    def __len__(self) -> int:
        return len(self._timers)
