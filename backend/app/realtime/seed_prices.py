"""Seed basket and walk parameters for the price simulator."""

from __future__ import annotations

from dataclasses import dataclass

from .models import InstrumentKind


@dataclass(frozen=True, slots=True)
class Instrument:
    """One simulated instrument and its fixed classification."""

    symbol: str
    kind: InstrumentKind
    seed_price: float
    peg: float | None = None  # Required for PEGGED instruments

    def __post_init__(self) -> None:
        if self.seed_price <= 0:
            raise ValueError(f"{self.symbol}: seed price must be positive, got {self.seed_price}")
        if self.kind is InstrumentKind.PEGGED and (self.peg is None or self.peg <= 0):
            raise ValueError(f"{self.symbol}: pegged instrument needs a positive peg")


# Starting prices for the dashboard's token basket. ETH drives the walk.
DEFAULT_BASKET: tuple[Instrument, ...] = (
    Instrument("ETH", InstrumentKind.ANCHOR, 1750.0),
    Instrument("BTC", InstrumentKind.CORRELATED, 42000.0),
    Instrument("USDC", InstrumentKind.PEGGED, 1.00, peg=1.00),
    Instrument("USDT", InstrumentKind.PEGGED, 1.00, peg=1.00),
    Instrument("UNI", InstrumentKind.CORRELATED, 8.5),
    Instrument("AAVE", InstrumentKind.CORRELATED, 87.0),
    Instrument("LINK", InstrumentKind.CORRELATED, 15.2),
    Instrument("COMP", InstrumentKind.CORRELATED, 45.0),
)

# Walk parameters, per tick
VOLATILITY = 0.02  # 2% band on the anchor's uniform draw
TREND = 0.001  # Small upward drift added to every anchor delta

# Correlated instruments draw a fresh coefficient in this range every tick
CORRELATION_RANGE = (0.3, 1.0)

# Independent move is scaled down relative to the anchor's volatility
INDEPENDENT_SCALE = 0.5

# Pegged instruments are reset to peg +/- this fraction every tick
PEG_BAND = 0.001
