"""Polling aggregator: fan out to every source, merge with stale-value fallback."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping

from .clock import Clock
from .config import ScheduleConfig
from .distribution import Broadcaster, Callback, Subscription
from .errors import CallbackError, FetchError
from .models import Field, Present, Snapshot, freeze
from .scheduler import IntervalScheduler, Scheduler
from .sources import FetchFn

logger = logging.getLogger(__name__)


class Aggregator:
    """Merges a fixed set of independent sources into one Snapshot per tick.

    Each tick issues every fetch together and waits for all of them to settle.
    A source that succeeds overwrites its field; a source that fails or times
    out leaves its previous value in place. `updated_at` advances on every
    tick, even when every source failed, so consumers can tell "attempted but
    fully stale" from "not polled".

    Lifecycle:
        aggregator = Aggregator(build_sources(client), config=ScheduleConfig(10_000))
        unsubscribe = aggregator.subscribe(on_update)   # gets current snapshot now
        aggregator.start()                              # first tick fires immediately
        ...
        aggregator.stop()
        await aggregator.aclose()
    """

    def __init__(
        self,
        sources: Mapping[str, FetchFn],
        config: ScheduleConfig | None = None,
        timeout: float | None = None,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        now: Callable[[], float] = time.time,
        on_callback_error: Callable[[CallbackError], object] | None = None,
    ) -> None:
        self._sources: dict[str, FetchFn] = dict(sources)
        self._config = config or ScheduleConfig(interval_ms=10_000)
        self._timeout = timeout
        self._now = now
        self._broadcaster: Broadcaster[Snapshot] = Broadcaster(
            Snapshot.empty(self._sources),
            name="aggregator",
            on_error=on_callback_error,
        )
        self._scheduler = scheduler or IntervalScheduler(
            self.refresh,
            clock=clock,
            name="aggregator",
            fire_immediately=True,
        )
        self._inflight: asyncio.Task[Snapshot] | None = None
        self.last_errors: dict[str, FetchError] = {}

    # --- Public API ---

    @property
    def source_names(self) -> list[str]:
        return list(self._sources)

    @property
    def config(self) -> ScheduleConfig:
        return self._config

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def running(self) -> bool:
        return self._scheduler.running

    @property
    def subscriber_count(self) -> int:
        return self._broadcaster.subscriber_count

    def get_current_snapshot(self) -> Snapshot:
        return self._broadcaster.current

    def subscribe(self, callback: Callback) -> Subscription[Snapshot]:
        """Register `callback`; it receives the current snapshot immediately."""
        return self._broadcaster.subscribe(callback)

    def start(self) -> None:
        """Start polling at the configured interval. No-op when disabled."""
        if not self._config.enabled:
            logger.info("Aggregator disabled by configuration, not starting")
            return
        self._scheduler.start(self._config.interval_ms)

    def stop(self) -> None:
        self._scheduler.stop()

    async def aclose(self) -> None:
        """Stop polling and let any in-flight tick finish delivering."""
        self.stop()
        await self._scheduler.wait_idle()
        if self._inflight is not None:
            await asyncio.wait([self._inflight])
        self._broadcaster.clear()

    async def refresh(self) -> Snapshot:
        """Run one tick: fetch everything, merge, stamp, broadcast.

        At most one tick is in flight. A call made while one is outstanding
        joins it and returns its snapshot instead of starting a second fetch
        phase. Cancelling the caller does not cancel the shared tick.
        """
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._tick())
            self._inflight.add_done_callback(self._tick_done)
        else:
            logger.debug("Aggregator: tick already in flight, joining it")
        return await asyncio.shield(self._inflight)

    # --- Internal ---

    async def _tick(self) -> Snapshot:
        names = list(self._sources)
        results = await asyncio.gather(
            *(self._fetch(name) for name in names),
            return_exceptions=True,
        )

        # No suspension from here on: merge and broadcast are atomic
        previous = self._broadcaster.current
        fields: dict[str, Field] = dict(previous.fields)
        failed: list[str] = []
        errors: dict[str, FetchError] = {}
        for name, result in zip(names, results):
            # Includes a CancelledError raised by the source itself
            if isinstance(result, BaseException):
                error = FetchError(name, result)
                errors[name] = error
                failed.append(name)
                logger.warning("Aggregator: %s (keeping last value)", error)
            else:
                fields[name] = Present(freeze(result))

        snapshot = Snapshot(
            fields=fields,
            updated_at=max(self._now(), previous.updated_at),
            tick=previous.tick + 1,
            succeeded=len(names) - len(failed),
            attempted=len(names),
            failed=tuple(failed),
        )
        self.last_errors = errors

        if names and not snapshot.succeeded:
            logger.warning("Aggregator tick %d: all %d sources failed", snapshot.tick, len(names))
        else:
            logger.debug(
                "Aggregator tick %d: %d/%d sources succeeded",
                snapshot.tick,
                snapshot.succeeded,
                snapshot.attempted,
            )

        self._broadcaster.publish(snapshot)
        return snapshot

    def _tick_done(self, task: asyncio.Task[Snapshot]) -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("Aggregator tick failed: %r", task.exception())

    async def _fetch(self, name: str) -> object:
        fetch = self._sources[name]
        if self._timeout is None:
            return await fetch()
        return await asyncio.wait_for(fetch(), timeout=self._timeout)
