"""Data models for the real-time layer."""

from __future__ import annotations

import time
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class _Absent:
    """Marker for a field that has never been fetched successfully."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    is_present = False

    def get(self, default: Any = None) -> Any:
        return default

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


@dataclass(frozen=True, slots=True)
class Present(Generic[T]):
    """A field value that was fetched successfully at least once."""

    value: T

    is_present = True

    def get(self, default: Any = None) -> T:
        return self.value


Field = Present[Any] | _Absent


def freeze(value: Any) -> Any:
    """Immutable equivalent of a fetched value, safe to share between subscribers.

    Lists and plain tuples become tuples, sets become frozensets and mappings
    become read-only views, recursively. Anything else is returned as-is, so
    sources should hand back scalars or frozen dataclasses for nested records.
    """
    if isinstance(value, list) or type(value) is tuple:
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(value)
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    return value


@dataclass(frozen=True)
class Snapshot:
    """Merged, timestamped view of every tracked field after a tick.

    Once a field becomes Present it stays Present in every later snapshot,
    even when its source keeps failing.
    """

    fields: Mapping[str, Field]
    updated_at: float = 0.0  # Unix seconds; 0.0 until the first tick
    tick: int = 0
    succeeded: int = 0
    attempted: int = 0
    failed: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.fields, MappingProxyType):
            object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @classmethod
    def empty(cls, names: Iterable[str]) -> Snapshot:
        """Default state before any tick: every field absent."""
        return cls(fields={name: ABSENT for name in names})

    @property
    def success_ratio(self) -> float:
        """Fraction of sources that succeeded on the last tick."""
        if self.attempted == 0:
            return 1.0
        return self.succeeded / self.attempted

    @property
    def is_stale(self) -> bool:
        """True when the last tick was attempted but every source failed."""
        return self.attempted > 0 and self.succeeded == 0

    def value(self, name: str, default: Any = None) -> Any:
        """Last-known value of a field, or `default` if never fetched."""
        return self.fields.get(name, ABSENT).get(default)

    def to_dict(self) -> dict:
        """Serialize for JSON / SSE transmission."""
        return {
            "fields": {name: f.get() for name, f in self.fields.items()},
            "present": [name for name, f in self.fields.items() if f.is_present],
            "updated_at": self.updated_at,
            "tick": self.tick,
            "succeeded": self.succeeded,
            "attempted": self.attempted,
            "success_ratio": round(self.success_ratio, 4),
            "failed": list(self.failed),
        }


class InstrumentKind(str, Enum):
    """Fixed per-instrument classification in the simulated basket."""

    ANCHOR = "anchor"
    CORRELATED = "correlated"
    PEGGED = "pegged"


@dataclass(frozen=True, slots=True)
class PriceUpdate:
    """Immutable snapshot of a single instrument's price at a point in time."""

    symbol: str
    kind: InstrumentKind
    price: float
    previous_price: float
    timestamp: float = field(default_factory=time.time)  # Unix seconds

    @property
    def change(self) -> float:
        """Absolute price change from previous tick."""
        return self.price - self.previous_price

    @property
    def change_percent(self) -> float:
        """Percentage change from previous tick."""
        if self.previous_price == 0:
            return 0.0
        return round((self.price - self.previous_price) / self.previous_price * 100, 4)

    @property
    def direction(self) -> str:
        """'up', 'down', or 'flat'."""
        if self.price > self.previous_price:
            return "up"
        elif self.price < self.previous_price:
            return "down"
        return "flat"

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "kind": self.kind.value,
            "price": self.price,
            "previous_price": self.previous_price,
            "timestamp": self.timestamp,
            "change": self.change,
            "change_percent": self.change_percent,
            "direction": self.direction,
        }


class PriceMap(Mapping[str, PriceUpdate]):
    """Read-only mapping of symbol -> PriceUpdate for one simulator tick."""

    __slots__ = ("_updates", "tick", "timestamp")

    def __init__(self, updates: Mapping[str, PriceUpdate], tick: int = 0, timestamp: float = 0.0) -> None:
        self._updates = MappingProxyType(dict(updates))
        self.tick = tick
        self.timestamp = timestamp

    def __getitem__(self, symbol: str) -> PriceUpdate:
        return self._updates[symbol]

    def __iter__(self) -> Iterator[str]:
        return iter(self._updates)

    def __len__(self) -> int:
        return len(self._updates)

    def __repr__(self) -> str:
        return f"PriceMap(tick={self.tick}, prices={self.prices()!r})"

    def prices(self) -> dict[str, float]:
        """Plain {symbol: price} copy."""
        return {symbol: update.price for symbol, update in self._updates.items()}

    def kinds(self) -> dict[str, InstrumentKind]:
        return {symbol: update.kind for symbol, update in self._updates.items()}

    def to_dict(self) -> dict:
        return {
            "tick": self.tick,
            "timestamp": self.timestamp,
            "prices": {symbol: update.to_dict() for symbol, update in self._updates.items()},
        }
