"""Periodic tick scheduling."""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum

from .clock import Clock, LoopClock, TimerHandle
from .errors import ConfigError

logger = logging.getLogger(__name__)

TickHandler = Callable[[], "Awaitable[object] | object"]


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class Scheduler(ABC):
    """Contract for driving periodic ticks.

    Lifecycle:
        scheduler = IntervalScheduler(handler)
        scheduler.start(5000)   # tick every 5s
        scheduler.start(1000)   # replaces the timer, never adds a second one
        scheduler.stop()
        scheduler.stop()        # no-op
        await scheduler.wait_idle()
    """

    @abstractmethod
    def start(self, interval_ms: int) -> None:
        """Begin (or re-time) periodic ticks every `interval_ms` milliseconds.

        Calling start() while running replaces the active timer.
        """

    @abstractmethod
    def stop(self) -> None:
        """Cancel the pending timer.

        Safe to call multiple times. A tick already in flight is not
        interrupted; it finishes and delivers, but nothing further runs.
        """

    @property
    @abstractmethod
    def running(self) -> bool:
        """True between start() and stop()."""

    @abstractmethod
    async def wait_idle(self) -> None:
        """Wait for the in-flight tick, if any, to settle."""


class IntervalScheduler(Scheduler):
    """Fixed-cadence scheduler that never overlaps ticks.

    The handler may be a plain function or return an awaitable. An awaitable
    tick is tracked as the in-flight tick; if the timer fires again before it
    settles, that tick is skipped (counted in `skipped_ticks`) rather than
    queued. Deadlines advance by exactly one interval from the previous
    deadline so slow ticks do not add drift.
    """

    def __init__(
        self,
        handler: TickHandler,
        clock: Clock | None = None,
        name: str = "scheduler",
        fire_immediately: bool = False,
    ) -> None:
        self._handler = handler
        self._clock = clock or LoopClock()
        self._name = name
        self._fire_immediately = fire_immediately
        self._state = SchedulerState.STOPPED
        self._timer: TimerHandle | None = None
        self._interval: float = 0.0
        self._deadline: float = 0.0
        self._inflight: asyncio.Future | None = None
        self.fired_ticks = 0
        self.skipped_ticks = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def interval(self) -> float:
        """Current interval in seconds (0.0 if never started)."""
        return self._interval

    @property
    def busy(self) -> bool:
        """True while an awaitable tick is still outstanding."""
        return self._inflight is not None and not self._inflight.done()

    def start(self, interval_ms: int) -> None:
        if isinstance(interval_ms, bool) or not isinstance(interval_ms, int) or interval_ms <= 0:
            raise ConfigError(f"{self._name}: interval_ms must be a positive integer, got {interval_ms!r}")

        restarting = self.running
        if restarting:
            self._cancel_timer()
            logger.debug("%s: already running, replacing timer", self._name)

        self._interval = interval_ms / 1000.0
        self._state = SchedulerState.RUNNING
        self._deadline = self._clock.time() + self._interval
        self._timer = self._clock.call_later(self._interval, self._on_timer)

        if restarting:
            logger.info("%s: interval changed to %dms", self._name, interval_ms)
            return

        logger.info("%s: started, %dms interval", self._name, interval_ms)
        if self._fire_immediately:
            self._fire()

    def stop(self) -> None:
        if not self.running:
            logger.debug("%s: stop() while stopped, ignoring", self._name)
            return
        self._cancel_timer()
        self._state = SchedulerState.STOPPED
        logger.info(
            "%s: stopped after %d ticks (%d skipped)",
            self._name,
            self.fired_ticks,
            self.skipped_ticks,
        )

    async def wait_idle(self) -> None:
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            await asyncio.wait([inflight])

    # --- Internal ---

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if not self.running:
            return

        now = self._clock.time()
        self._deadline += self._interval
        if self._deadline <= now:
            # The loop was blocked past one or more deadlines; those are skipped
            missed = int((now - self._deadline) // self._interval) + 1
            self._deadline += missed * self._interval
            self.skipped_ticks += missed
            logger.warning("%s: fell behind, skipped %d tick(s)", self._name, missed)
        self._timer = self._clock.call_later(self._deadline - now, self._on_timer)

        self._fire()

    def _fire(self) -> None:
        if self.busy:
            self.skipped_ticks += 1
            logger.debug("%s: previous tick still in flight, skipping this one", self._name)
            return

        self.fired_ticks += 1
        try:
            result = self._handler()
        except Exception:
            logger.exception("%s: tick failed", self._name)
            return

        if inspect.isawaitable(result):
            self._inflight = asyncio.ensure_future(result)
            self._inflight.add_done_callback(self._on_tick_done)

    def _on_tick_done(self, future: asyncio.Future) -> None:
        if future.cancelled():
            logger.debug("%s: in-flight tick was cancelled", self._name)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("%s: tick failed", self._name, exc_info=exc)
