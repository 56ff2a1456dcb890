"""Tests for IntervalScheduler."""

import asyncio

import pytest

from app.realtime.errors import ConfigError
from app.realtime.scheduler import IntervalScheduler, SchedulerState


class TestIntervalScheduler:
    """Deterministic tests driven by the fake clock."""

    def test_ticks_once_per_interval(self, clock):
        """Test that exactly one tick fires per interval."""
        ticks = []
        scheduler = IntervalScheduler(lambda: ticks.append(clock.time()), clock=clock)
        scheduler.start(1000)

        clock.advance(10)

        assert ticks == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0, 10.0]
        assert scheduler.fired_ticks == 10

    def test_fire_immediately(self, clock):
        """Test that fire_immediately runs a tick on start()."""
        ticks = []
        scheduler = IntervalScheduler(lambda: ticks.append(clock.time()), clock=clock, fire_immediately=True)
        scheduler.start(1000)
        assert ticks == [0.0]

        clock.advance(3)
        assert ticks == [0.0, 1.0, 2.0, 3.0]

    def test_start_twice_does_not_double_rate(self, clock):
        """Calling start() twice replaces the timer instead of adding one."""
        ticks = []
        scheduler = IntervalScheduler(lambda: ticks.append(clock.time()), clock=clock)
        scheduler.start(1000)
        scheduler.start(1000)

        assert len(clock.pending()) == 1
        clock.advance(10)
        assert len(ticks) == 10

    def test_restart_does_not_fire_immediately_again(self, clock):
        """Only the stopped -> running transition fires the immediate tick."""
        ticks = []
        scheduler = IntervalScheduler(lambda: ticks.append(clock.time()), clock=clock, fire_immediately=True)
        scheduler.start(1000)
        scheduler.start(1000)
        assert ticks == [0.0]

    def test_start_while_running_changes_interval(self, clock):
        """Test that start() with a new interval re-times the ticks."""
        ticks = []
        scheduler = IntervalScheduler(lambda: ticks.append(clock.time()), clock=clock)
        scheduler.start(1000)
        clock.advance(2)
        assert len(ticks) == 2

        scheduler.start(500)
        clock.advance(2)
        assert len(ticks) == 6
        assert scheduler.interval == 0.5

    def test_stop_cancels_future_ticks(self, clock):
        """Test that no tick fires after stop()."""
        ticks = []
        scheduler = IntervalScheduler(lambda: ticks.append(clock.time()), clock=clock)
        scheduler.start(1000)
        clock.advance(3)
        scheduler.stop()
        clock.advance(10)

        assert len(ticks) == 3
        assert clock.pending() == []
        assert scheduler.state is SchedulerState.STOPPED

    def test_stop_while_stopped_is_noop(self, clock):
        """Test that stop() before start() and double stop() are safe."""
        scheduler = IntervalScheduler(lambda: None, clock=clock)
        scheduler.stop()
        scheduler.start(1000)
        scheduler.stop()
        scheduler.stop()
        assert not scheduler.running

    def test_restart_after_stop(self, clock):
        """Test that a stopped scheduler can be started again."""
        ticks = []
        scheduler = IntervalScheduler(lambda: ticks.append(clock.time()), clock=clock)
        scheduler.start(1000)
        clock.advance(2)
        scheduler.stop()
        clock.advance(5)
        scheduler.start(1000)
        clock.advance(2)

        assert ticks == [1.0, 2.0, 8.0, 9.0]

    def test_handler_exception_does_not_stop_scheduler(self, clock):
        """A raising handler is logged and the scheduler keeps ticking."""
        calls = []

        def handler():
            calls.append(clock.time())
            raise RuntimeError("boom")

        scheduler = IntervalScheduler(handler, clock=clock)
        scheduler.start(1000)
        clock.advance(3)

        assert len(calls) == 3
        assert scheduler.running

    @pytest.mark.parametrize("interval", [0, -1000, 1.5, "1000", True])
    def test_invalid_interval_rejected(self, clock, interval):
        """Test that non-positive or non-integer intervals raise ConfigError."""
        scheduler = IntervalScheduler(lambda: None, clock=clock)
        with pytest.raises(ConfigError):
            scheduler.start(interval)
        assert not scheduler.running

    def test_stop_from_inside_handler(self, clock):
        """A handler may stop its own scheduler; no further ticks fire."""
        ticks = []

        def handler():
            ticks.append(clock.time())
            scheduler.stop()

        scheduler = IntervalScheduler(handler, clock=clock)
        scheduler.start(1000)
        clock.advance(5)

        assert ticks == [1.0]
        assert clock.pending() == []


@pytest.mark.asyncio
class TestIntervalSchedulerAsync:
    """Tests for awaitable tick handlers."""

    async def test_overdue_tick_is_skipped(self, clock):
        """A tick that fires while the previous one is outstanding is skipped."""
        release = asyncio.Event()
        active = 0
        max_active = 0
        completed = 0

        async def handler():
            nonlocal active, max_active, completed
            active += 1
            max_active = max(max_active, active)
            await release.wait()
            active -= 1
            completed += 1

        scheduler = IntervalScheduler(handler, clock=clock)
        scheduler.start(1000)

        clock.advance(1)
        await asyncio.sleep(0)
        assert scheduler.busy

        clock.advance(2)  # Two more deadlines while the first tick is stuck
        assert scheduler.skipped_ticks == 2

        release.set()
        await scheduler.wait_idle()
        assert not scheduler.busy

        clock.advance(1)
        await scheduler.wait_idle()

        assert scheduler.fired_ticks == 2
        assert completed == 2
        assert max_active == 1
        scheduler.stop()

    async def test_stop_does_not_abort_inflight_tick(self, clock):
        """stop() cancels the timer only; the running tick still completes."""
        release = asyncio.Event()
        completed = []

        async def handler():
            await release.wait()
            completed.append(clock.time())

        scheduler = IntervalScheduler(handler, clock=clock)
        scheduler.start(1000)
        clock.advance(1)
        await asyncio.sleep(0)

        scheduler.stop()
        release.set()
        await scheduler.wait_idle()

        assert completed == [1.0]

        clock.advance(5)
        await scheduler.wait_idle()
        assert completed == [1.0]
        assert scheduler.fired_ticks == 1

    async def test_async_handler_exception_is_absorbed(self, clock):
        """An exception inside an awaitable tick does not stop the scheduler."""
        calls = 0

        async def handler():
            nonlocal calls
            calls += 1
            raise RuntimeError("fetch phase blew up")

        scheduler = IntervalScheduler(handler, clock=clock)
        scheduler.start(1000)
        for _ in range(3):
            clock.advance(1)
            await scheduler.wait_idle()

        assert calls == 3
        assert scheduler.running
        scheduler.stop()

    async def test_wait_idle_without_inflight_tick(self, clock):
        """Test that wait_idle() returns immediately when nothing is running."""
        scheduler = IntervalScheduler(lambda: None, clock=clock)
        await scheduler.wait_idle()

    async def test_real_loop_start_twice_tick_rate(self):
        """Over T with interval I, start() twice still gives about T/I ticks."""
        ticks = []
        scheduler = IntervalScheduler(lambda: ticks.append(1), name="real-loop")
        scheduler.start(50)
        scheduler.start(50)

        await asyncio.sleep(0.5)
        scheduler.stop()

        # ~10 expected; a doubled rate would give ~20
        assert 5 <= len(ticks) <= 11
