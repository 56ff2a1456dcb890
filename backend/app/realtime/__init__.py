"""Real-time data distribution for the DeFi dashboard.

Public API:
    Snapshot            - Merged, timestamped view of every tracked field
    PriceMap            - Immutable symbol -> PriceUpdate map from the simulator
    Aggregator          - Polls data sources and merges with stale-value fallback
    PriceSimulator      - Scheduled correlated random-walk price generator
    Broadcaster         - Subscriber registry with replay-on-subscribe
    IntervalScheduler   - Fixed-cadence, non-overlapping tick driver
    RealtimeSettings    - Configuration (see RealtimeSettings.from_env)
    create_realtime_services - Builds the single aggregator/simulator pair
    create_realtime_router   - FastAPI router factory for the HTTP surface
"""

from .aggregator import Aggregator
from .config import RealtimeSettings, ScheduleConfig
from .distribution import Broadcaster, Subscription
from .errors import CallbackError, ConfigError, FetchError, RealtimeError
from .factory import RealtimeServices, create_realtime_services
from .models import ABSENT, InstrumentKind, Present, PriceMap, PriceUpdate, Snapshot
from .scheduler import IntervalScheduler, Scheduler
from .simulator import CorrelatedWalk, PriceSimulator
from .stream import create_realtime_router

__all__ = [
    "ABSENT",
    "Aggregator",
    "Broadcaster",
    "CallbackError",
    "ConfigError",
    "CorrelatedWalk",
    "FetchError",
    "InstrumentKind",
    "IntervalScheduler",
    "Present",
    "PriceMap",
    "PriceSimulator",
    "PriceUpdate",
    "RealtimeError",
    "RealtimeServices",
    "RealtimeSettings",
    "ScheduleConfig",
    "Scheduler",
    "Snapshot",
    "Subscription",
    "create_realtime_router",
    "create_realtime_services",
]
