"""Correlated random-walk price simulator."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence

import numpy as np

from .clock import Clock
from .config import ScheduleConfig
from .distribution import Broadcaster, Callback, Subscription
from .errors import CallbackError, ConfigError
from .models import InstrumentKind, PriceMap, PriceUpdate
from .scheduler import IntervalScheduler, Scheduler
from .seed_prices import (
    CORRELATION_RANGE,
    DEFAULT_BASKET,
    INDEPENDENT_SCALE,
    PEG_BAND,
    TREND,
    VOLATILITY,
    Instrument,
)

logger = logging.getLogger(__name__)


class CorrelatedWalk:
    """Multiplicative random walk for a basket driven by one anchor instrument.

    Math, per tick:
        delta        = U(-0.5, 0.5) * volatility + trend
        anchor      *= 1 + delta
        correlated  *= 1 + delta * rho + eps       rho ~ U(0.3, 1.0)
                                                   eps ~ U(-0.5, 0.5) * volatility * 0.5
        pegged       = peg + U(-0.001, 0.001) * peg

    rho and eps are drawn fresh for every instrument on every tick. Pegged
    prices are reset rather than compounded, so they never leave the peg band.
    Anchor and correlated prices only ever get multiplied by a factor close
    to 1, so they stay strictly positive.
    """

    def __init__(
        self,
        instruments: Iterable[Instrument] = DEFAULT_BASKET,
        volatility: float = VOLATILITY,
        trend: float = TREND,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
    ) -> None:
        if volatility < 0:
            raise ConfigError(f"volatility must be non-negative, got {volatility}")
        # Largest one-tick drop a correlated instrument can take
        worst_drop = 0.5 * volatility + abs(trend) + 0.5 * volatility * INDEPENDENT_SCALE
        if worst_drop >= 1:
            raise ConfigError(f"volatility={volatility}, trend={trend} would allow non-positive prices")

        self._volatility = volatility
        self._trend = trend
        self._rng = rng if rng is not None else np.random.default_rng(seed)

        self._instruments: dict[str, Instrument] = {}
        for instrument in instruments:
            if instrument.symbol in self._instruments:
                raise ConfigError(f"duplicate instrument {instrument.symbol}")
            self._instruments[instrument.symbol] = instrument

        anchors = [s for s, i in self._instruments.items() if i.kind is InstrumentKind.ANCHOR]
        if len(anchors) != 1:
            raise ConfigError(f"basket needs exactly one anchor instrument, got {len(anchors)}")
        self._anchor = anchors[0]
        self._correlated = [s for s, i in self._instruments.items() if i.kind is InstrumentKind.CORRELATED]
        self._pegged = [s for s, i in self._instruments.items() if i.kind is InstrumentKind.PEGGED]

        self._prices: dict[str, float] = {s: i.seed_price for s, i in self._instruments.items()}

    # --- Public API ---

    @property
    def anchor(self) -> str:
        return self._anchor

    @property
    def instruments(self) -> dict[str, Instrument]:
        return dict(self._instruments)

    def get_price(self, symbol: str) -> float | None:
        """Current price for a symbol, or None if not simulated."""
        return self._prices.get(symbol)

    def prices(self) -> dict[str, float]:
        return dict(self._prices)

    def anchor_delta(self) -> float:
        """Draw the anchor's walk delta for one tick."""
        return float(self._rng.uniform(-0.5, 0.5)) * self._volatility + self._trend

    def step(self) -> dict[str, float]:
        """Advance every instrument by one tick. Returns {symbol: new_price}."""
        delta = self.anchor_delta()
        n = len(self._correlated)
        low, high = CORRELATION_RANGE
        correlations = self._rng.uniform(low, high, size=n)
        independents = self._rng.uniform(-0.5, 0.5, size=n) * self._volatility * INDEPENDENT_SCALE
        peg_offsets = self._rng.uniform(-PEG_BAND, PEG_BAND, size=len(self._pegged))
        return self.apply(delta, correlations, independents, peg_offsets)

    def apply(
        self,
        delta: float,
        correlations: Sequence[float] | np.ndarray,
        independents: Sequence[float] | np.ndarray,
        peg_offsets: Sequence[float] | np.ndarray | None = None,
    ) -> dict[str, float]:
        """Apply one tick with explicit random components.

        `correlations` and `independents` line up with the correlated
        instruments in basket order; `peg_offsets` with the pegged ones
        (zeros if omitted, i.e. exactly on the peg).
        """
        n = len(self._correlated)
        correlations = np.asarray(correlations, dtype=float)
        independents = np.asarray(independents, dtype=float)
        if correlations.shape != (n,) or independents.shape != (n,):
            raise ValueError(f"expected {n} correlations and independents")
        if peg_offsets is None:
            peg_offsets = np.zeros(len(self._pegged))
        peg_offsets = np.asarray(peg_offsets, dtype=float)
        if peg_offsets.shape != (len(self._pegged),):
            raise ValueError(f"expected {len(self._pegged)} peg offsets")

        self._prices[self._anchor] *= 1 + delta

        factors = 1.0 + delta * correlations + independents
        for symbol, factor in zip(self._correlated, factors):
            self._prices[symbol] *= float(factor)

        for symbol, offset in zip(self._pegged, peg_offsets):
            peg = self._instruments[symbol].peg
            self._prices[symbol] = peg + float(offset) * peg

        return dict(self._prices)

    @staticmethod
    def correlated_factor(delta: float, correlation: float, independent: float) -> float:
        """Multiplier applied to a correlated instrument for one tick."""
        return 1 + delta * correlation + independent


class PriceSimulator:
    """Scheduled producer of synthetic prices with subscribe/broadcast.

    Build one instance at process start and pass it to every consumer.
    Subscribers get the current PriceMap on subscribe and every new one
    after each tick.
    """

    def __init__(
        self,
        instruments: Iterable[Instrument] = DEFAULT_BASKET,
        config: ScheduleConfig | None = None,
        volatility: float = VOLATILITY,
        trend: float = TREND,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        now: Callable[[], float] = time.time,
        on_callback_error: Callable[[CallbackError], object] | None = None,
    ) -> None:
        self._walk = CorrelatedWalk(instruments, volatility=volatility, trend=trend, rng=rng, seed=seed)
        self._config = config or ScheduleConfig(interval_ms=5_000)
        self._now = now
        initial = self._build_map(self._walk.prices(), previous=None, tick=0, timestamp=0.0)
        self._broadcaster: Broadcaster[PriceMap] = Broadcaster(
            initial,
            name="price-simulator",
            on_error=on_callback_error,
        )
        self._scheduler = scheduler or IntervalScheduler(self.tick, clock=clock, name="price-simulator")

    # --- Public API ---

    @property
    def walk(self) -> CorrelatedWalk:
        return self._walk

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

    def start(self) -> None:
        """Start ticking at the configured interval. No-op when disabled."""
        if not self._config.enabled:
            logger.info("Price simulator disabled by configuration, not starting")
            return
        self._scheduler.start(self._config.interval_ms)

    def stop(self) -> None:
        self._scheduler.stop()

    async def aclose(self) -> None:
        self.stop()
        await self._scheduler.wait_idle()
        self._broadcaster.clear()

    def subscribe(self, callback: Callback) -> Subscription[PriceMap]:
        """Register `callback`; it receives the current prices immediately."""
        return self._broadcaster.subscribe(callback)

    def get_current_prices(self) -> PriceMap:
        return self._broadcaster.current

    def get_price(self, symbol: str) -> float | None:
        update = self._broadcaster.current.get(symbol)
        return update.price if update else None

    def tick(self) -> PriceMap:
        """Advance the walk one step and broadcast the new prices."""
        previous = self._broadcaster.current
        prices = self._walk.step()
        price_map = self._build_map(
            prices,
            previous=previous,
            tick=previous.tick + 1,
            timestamp=max(self._now(), previous.timestamp),
        )
        logger.debug(
            "Simulator tick %d: %s=%.2f",
            price_map.tick,
            self._walk.anchor,
            prices[self._walk.anchor],
        )
        self._broadcaster.publish(price_map)
        return price_map

    # --- Internals ---

    def _build_map(
        self,
        prices: dict[str, float],
        previous: PriceMap | None,
        tick: int,
        timestamp: float,
    ) -> PriceMap:
        instruments = self._walk.instruments
        updates = {}
        for symbol, price in prices.items():
            prev = previous.get(symbol) if previous is not None else None
            updates[symbol] = PriceUpdate(
                symbol=symbol,
                kind=instruments[symbol].kind,
                price=price,
                previous_price=prev.price if prev else price,
                timestamp=timestamp,
            )
        return PriceMap(updates, tick=tick, timestamp=timestamp)
