"""
Cancellable scheduled tasks owned by the flow components.

Every wall-clock timer (loading delay, resend cooldown, welcome staging)
goes through a Scheduler and is tracked by the TimerGroup of the
component that armed it. Cancelling a timer guarantees its callback
never runs, even if the underlying loop handle already fired.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback once after ``delay`` seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler on top of the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class ScheduledTimer:
    """A single timer that can be cancelled before it fires."""

    def __init__(self, scheduler: Scheduler, delay: float, callback: Callable[[], None], name: str = "") -> None:
        self.name = name
        self._callback = callback
        self._cancelled = False
        self._fired = False
        self._handle = scheduler.call_later(delay, self._fire)

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._fired)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _fire(self) -> None:
        if not self.active:
            return
        self._fired = True
        self._callback()

    def cancel(self) -> None:
        if not self.active:
            return
        self._cancelled = True
        self._handle.cancel()
        logger.debug("Timer cancelled: %s", self.name or "<unnamed>")


class TimerGroup:
    """Tracks the timers of one component so teardown can cancel them all."""

    def __init__(self, scheduler: Scheduler) -> None:
        self.scheduler = scheduler
        self._timers: list[ScheduledTimer] = []

    def schedule(self, delay: float, callback: Callable[[], None], name: str = "") -> ScheduledTimer:
        self._timers = [t for t in self._timers if t.active]
        timer = ScheduledTimer(self.scheduler, delay, callback, name=name)
        self._timers.append(timer)
        return timer

    def active_count(self) -> int:
        return sum(1 for t in self._timers if t.active)

    def cancel_all(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()


class Countdown:
    """
    Whole-second countdown, ticking once per second.

    ``remaining`` reaches 0 after ``seconds`` ticks, at which point
    ``finished`` becomes True and ``on_finish`` runs once.
    """

    def __init__(
        self,
        timers: TimerGroup,
        on_tick: Optional[Callable[[int], None]] = None,
        on_finish: Optional[Callable[[], None]] = None,
        name: str = "countdown",
    ) -> None:
        self._timers = timers
        self._on_tick = on_tick
        self._on_finish = on_finish
        self._name = name
        self._timer: Optional[ScheduledTimer] = None
        self.remaining = 0

    @property
    def finished(self) -> bool:
        return self.remaining <= 0

    def start(self, seconds: int) -> None:
        self.cancel()
        self.remaining = max(seconds, 0)
        if self.remaining == 0:
            if self._on_finish:
                self._on_finish()
            return
        self._arm()

    def _arm(self) -> None:
        self._timer = self._timers.schedule(1.0, self._tick, name=self._name)

    def _tick(self) -> None:
        self.remaining -= 1
        if self._on_tick:
            self._on_tick(self.remaining)
        if self.remaining > 0:
            self._arm()
        elif self._on_finish:
            self._on_finish()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
