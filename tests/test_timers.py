"""Tests for cancellable timers and the resend countdown."""

import asyncio

import pytest

from altq.auth.timers import AsyncioScheduler, Countdown, TimerGroup


class TestTimerGroup:
    def test_fires_after_delay(self, scheduler):
        fired = []
        group = TimerGroup(scheduler)
        group.schedule(1.0, lambda: fired.append("x"), name="t")
        scheduler.advance(0.5)
        assert fired == []
        scheduler.advance(0.5)
        assert fired == ["x"]
        assert group.active_count() == 0

    def test_cancel_all_prevents_callbacks(self, scheduler):
        fired = []
        group = TimerGroup(scheduler)
        group.schedule(1.0, lambda: fired.append(1))
        group.schedule(2.0, lambda: fired.append(2))
        assert group.active_count() == 2
        group.cancel_all()
        scheduler.advance(5)
        assert fired == []

    def test_cancelled_timer_ignores_late_fire(self, scheduler):
        fired = []
        timer = TimerGroup(scheduler).schedule(1.0, lambda: fired.append(1))
        timer.cancel()
        # An underlying handle that still fires must not reach the callback
        timer._fire()
        assert fired == []
        assert timer.cancelled


class TestCountdown:
    def test_ticks_down_to_finish(self, scheduler):
        ticks, finished = [], []
        countdown = Countdown(TimerGroup(scheduler), on_tick=ticks.append, on_finish=lambda: finished.append(True))
        countdown.start(3)
        assert not countdown.finished
        scheduler.advance(3)
        assert ticks == [2, 1, 0]
        assert finished == [True]
        assert countdown.finished

    def test_restart_resets_remaining(self, scheduler):
        countdown = Countdown(TimerGroup(scheduler))
        countdown.start(30)
        scheduler.advance(25)
        countdown.start(30)
        assert countdown.remaining == 30
        scheduler.advance(29)
        assert countdown.remaining == 1

    def test_zero_finishes_immediately(self, scheduler):
        finished = []
        countdown = Countdown(TimerGroup(scheduler), on_finish=lambda: finished.append(True))
        countdown.start(0)
        assert finished == [True]
        assert scheduler.pending() == 0


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_runs_on_event_loop(self):
        fired = asyncio.Event()
        TimerGroup(AsyncioScheduler()).schedule(0.01, fired.set)
        await asyncio.wait_for(fired.wait(), timeout=1.0)
        assert fired.is_set()

    @pytest.mark.asyncio
    async def test_cancel_on_event_loop(self):
        fired = []
        group = TimerGroup(AsyncioScheduler())
        group.schedule(0.01, lambda: fired.append(1))
        group.cancel_all()
        await asyncio.sleep(0.05)
        assert fired == []
