"""Factory for the process-wide real-time services."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .aggregator import Aggregator
from .config import RealtimeSettings
from .simulator import PriceSimulator
from .sources import DefiApiClient, build_sources

logger = logging.getLogger(__name__)


@dataclass
class RealtimeServices:
    """The single aggregator and simulator shared by every consumer."""

    aggregator: Aggregator
    simulator: PriceSimulator
    client: DefiApiClient | None = None

    def start(self) -> None:
        """Start every enabled component."""
        self.aggregator.start()
        self.simulator.start()

    async def aclose(self) -> None:
        """Stop both components, let in-flight ticks settle, close the HTTP client."""
        await self.aggregator.aclose()
        await self.simulator.aclose()
        if self.client is not None:
            await self.client.close()
        logger.info("Real-time services shut down")


def create_realtime_services(
    settings: RealtimeSettings | None = None,
    client: DefiApiClient | None = None,
) -> RealtimeServices:
    """Build the aggregator and the price simulator once, at process start.

    - No settings given → read them from the environment
    - No client given → DefiApiClient against settings.api_base_url

    Returns unstarted services. Caller must call services.start() from
    inside the running event loop.
    """
    if settings is None:
        settings = RealtimeSettings.from_env()

    if client is None:
        client = DefiApiClient(base_url=settings.api_base_url, timeout=settings.fetch_timeout)

    aggregator = Aggregator(
        build_sources(client, protocol=settings.protocol),
        config=settings.aggregator,
        timeout=settings.fetch_timeout,
    )
    simulator = PriceSimulator(config=settings.simulator, seed=settings.seed)

    logger.info(
        "Real-time services: aggregator %s (%dms, %d sources), simulator %s (%dms)",
        "enabled" if settings.aggregator.enabled else "disabled",
        settings.aggregator.interval_ms,
        len(aggregator.source_names),
        "enabled" if settings.simulator.enabled else "disabled",
        settings.simulator.interval_ms,
    )
    return RealtimeServices(aggregator=aggregator, simulator=simulator, client=client)
