"""Configuration for the scheduled real-time components."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .errors import ConfigError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

DEFAULT_API_BASE_URL = "http://localhost:3000/api/v1"


@dataclass(frozen=True, slots=True)
class ScheduleConfig:
    """Interval and on/off switch for one scheduled component."""

    interval_ms: int
    enabled: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.interval_ms, bool) or not isinstance(self.interval_ms, int):
            raise ConfigError(f"interval_ms must be an integer, got {self.interval_ms!r}")
        if self.interval_ms <= 0:
            raise ConfigError(f"interval_ms must be positive, got {self.interval_ms}")

    @property
    def interval(self) -> float:
        """Interval in seconds."""
        return self.interval_ms / 1000.0


@dataclass(frozen=True, slots=True)
class RealtimeSettings:
    """Everything needed to build the aggregator and the price simulator."""

    aggregator: ScheduleConfig = field(default_factory=lambda: ScheduleConfig(interval_ms=10_000))
    simulator: ScheduleConfig = field(default_factory=lambda: ScheduleConfig(interval_ms=5_000))
    api_base_url: str = DEFAULT_API_BASE_URL
    fetch_timeout: float = 10.0  # Seconds, per source
    protocol: str = "aave"
    seed: int | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RealtimeSettings:
        """Build settings from environment variables.

        Unset or blank variables fall back to the defaults.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def get(name: str) -> str:
            return env.get(name, "").strip()

        timeout = _parse_float("DEFI_FETCH_TIMEOUT", get("DEFI_FETCH_TIMEOUT"), defaults.fetch_timeout)
        if timeout <= 0:
            raise ConfigError(f"DEFI_FETCH_TIMEOUT must be positive, got {timeout}")

        seed_raw = get("PRICE_SIM_SEED")
        return cls(
            aggregator=ScheduleConfig(
                interval_ms=_parse_int("REALTIME_INTERVAL_MS", get("REALTIME_INTERVAL_MS"), defaults.aggregator.interval_ms),
                enabled=_parse_bool("REALTIME_ENABLED", get("REALTIME_ENABLED"), defaults.aggregator.enabled),
            ),
            simulator=ScheduleConfig(
                interval_ms=_parse_int("PRICE_SIM_INTERVAL_MS", get("PRICE_SIM_INTERVAL_MS"), defaults.simulator.interval_ms),
                enabled=_parse_bool("PRICE_SIM_ENABLED", get("PRICE_SIM_ENABLED"), defaults.simulator.enabled),
            ),
            api_base_url=get("DEFI_API_BASE_URL") or defaults.api_base_url,
            fetch_timeout=timeout,
            protocol=(get("DEFI_PROTOCOL") or defaults.protocol).lower(),
            seed=_parse_int("PRICE_SIM_SEED", seed_raw, 0) if seed_raw else None,
            log_level=(get("LOG_LEVEL") or defaults.log_level).upper(),
        )


def _parse_int(name: str, raw: str, default: int) -> int:
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _parse_float(name: str, raw: str, default: float) -> float:
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _parse_bool(name: str, raw: str, default: bool) -> bool:
    if not raw:
        return default
    value = raw.lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")
