"""Data source adapters backed by the dashboard's DeFi REST API."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import aiohttp

from .config import DEFAULT_API_BASE_URL

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class ProtocolStats:
    """Lending protocol statistics as returned by /defi/protocols/{name}/stats.

    Monetary amounts arrive as decimal strings and are kept that way.
    """

    name: str
    tvl: str
    total_borrowed: str
    total_supplied: str
    utilization_rate: float
    average_supply_apy: float
    average_borrow_apy: float
    active_users: int
    health_factor: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProtocolStats:
        return cls(
            name=str(data["name"]),
            tvl=str(data["tvl"]),
            total_borrowed=str(data["total_borrowed"]),
            total_supplied=str(data["total_supplied"]),
            utilization_rate=float(data["utilization_rate"]),
            average_supply_apy=float(data["average_supply_apy"]),
            average_borrow_apy=float(data["average_borrow_apy"]),
            active_users=int(data["active_users"]),
            health_factor=float(data["health_factor"]),
        )


@dataclass(frozen=True, slots=True)
class YieldOpportunity:
    protocol: str
    asset: str
    apy: float
    risk_level: str
    minimum_deposit: str
    available_liquidity: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> YieldOpportunity:
        return cls(
            protocol=str(data["protocol"]),
            asset=str(data["asset"]),
            apy=float(data["apy"]),
            risk_level=str(data["risk_level"]),
            minimum_deposit=str(data["minimum_deposit"]),
            available_liquidity=str(data["available_liquidity"]),
        )


class DefiApiClient:
    """Thin async client for the backend's /defi endpoints.

    Every method either returns parsed data or raises (HTTP status errors,
    timeouts, malformed JSON). Retrying and stale-value handling belong to
    the Aggregator, not here.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> DefiApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this client created it. Safe to call twice."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            logger.info("DeFi API client closed")
        if self._owns_session:
            self._session = None

    async def get_protocols(self) -> tuple[str, ...]:
        data = await self._get_json("/defi/protocols")
        if not isinstance(data, list):
            raise TypeError(f"expected a list of protocols, got {type(data).__name__}")
        return tuple(str(p) for p in data)

    async def get_protocol_stats(self, protocol: str) -> ProtocolStats:
        data = await self._get_json(f"/defi/protocols/{protocol}/stats")
        return ProtocolStats.from_dict(data)

    async def get_yield_opportunities(self) -> tuple[YieldOpportunity, ...]:
        data = await self._get_json("/defi/opportunities")
        if not isinstance(data, list):
            raise TypeError(f"expected a list of opportunities, got {type(data).__name__}")
        return tuple(YieldOpportunity.from_dict(item) for item in data)

    # --- Internal ---

    def _get_session(self) -> aiohttp.ClientSession:
        # Lazy: the session must be created inside the running event loop
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def _get_json(self, path: str) -> Any:
        url = f"{self._base_url}{path}"
        session = self._get_session()
        async with session.get(url, raise_for_status=True) as response:
            payload = await response.json()
        logger.debug("GET %s -> %d", url, response.status)
        return payload


def build_sources(client: DefiApiClient, protocol: str = "aave") -> dict[str, FetchFn]:
    """The dashboard's tracked fields, each bound to its fetch call."""

    async def fetch_protocol_stats() -> ProtocolStats:
        return await client.get_protocol_stats(protocol)

    return {
        "protocols": client.get_protocols,
        f"{protocol}_stats": fetch_protocol_stats,
        "opportunities": client.get_yield_opportunities,
    }
