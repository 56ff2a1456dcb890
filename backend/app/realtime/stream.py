"""HTTP surface: current-state endpoints, simulator control and SSE feeds."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Callable
from typing import Any

from fastapi import APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse

from .distribution import Subscription
from .factory import RealtimeServices

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
}


class QueueSubscriber:
    """Subscriber callback that buffers broadcasts for one async consumer.

    The buffer is bounded; when a slow client falls behind, the oldest
    pending update is dropped so the client always catches up to the latest.
    """

    def __init__(self, maxsize: int = 16) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def __call__(self, state: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(state)

    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self) -> Any:
        return await self._queue.get()


def create_realtime_router(services: RealtimeServices) -> APIRouter:
    """Create the real-time router bound to the shared services.

    This factory pattern lets us inject the services without globals.
    """
    router = APIRouter(prefix="/api/realtime", tags=["realtime"])
    aggregator = services.aggregator
    simulator = services.simulator

    @router.get("/snapshot")
    async def get_snapshot() -> dict:
        """Latest merged snapshot, including the last tick's success ratio."""
        return jsonable_encoder(aggregator.get_current_snapshot().to_dict())

    @router.get("/prices")
    async def get_prices() -> dict:
        return simulator.get_current_prices().to_dict()

    @router.post("/prices/start")
    async def start_prices() -> dict:
        simulator.start()
        return {"running": simulator.running}

    @router.post("/prices/stop")
    async def stop_prices() -> dict:
        simulator.stop()
        return {"running": simulator.running}

    @router.get("/status")
    async def get_status() -> dict:
        """Liveness figures for connectivity indicators in the UI."""
        snapshot = aggregator.get_current_snapshot()
        prices = simulator.get_current_prices()
        return {
            "aggregator": {
                "running": aggregator.running,
                "interval_ms": aggregator.config.interval_ms,
                "tick": snapshot.tick,
                "updated_at": snapshot.updated_at,
                "succeeded": snapshot.succeeded,
                "attempted": snapshot.attempted,
                "success_ratio": snapshot.success_ratio,
                "failed": list(snapshot.failed),
                "subscribers": aggregator.subscriber_count,
            },
            "simulator": {
                "running": simulator.running,
                "interval_ms": simulator.config.interval_ms,
                "tick": prices.tick,
                "subscribers": simulator.subscriber_count,
            },
        }

    @router.get("/stream/snapshot")
    async def stream_snapshot(request: Request) -> StreamingResponse:
        """SSE feed of aggregator snapshots. First event is the current one."""
        return StreamingResponse(
            _generate_events(aggregator.subscribe, lambda s: s.to_dict(), request),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @router.get("/stream/prices")
    async def stream_prices(request: Request) -> StreamingResponse:
        """SSE feed of simulated prices. First event is the current map.

        The client connects with EventSource and receives events like:

            data: {"tick": 12, "timestamp": ..., "prices": {"ETH": {...}, ...}}
        """
        return StreamingResponse(
            _generate_events(simulator.subscribe, lambda m: m.to_dict(), request),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return router


async def _generate_events(
    subscribe: Callable[[Callable[[Any], None]], Subscription],
    serialize: Callable[[Any], dict],
    request: Request,
    heartbeat: float = 15.0,
    maxsize: int = 16,
) -> AsyncGenerator[str, None]:
    """Async generator that yields one SSE event per broadcast.

    The client is an ordinary subscriber for the lifetime of the response and
    is unsubscribed when it disconnects or the response is cancelled.
    """
    # Tell the client to retry after 1 second if the connection drops
    yield "retry: 1000\n\n"

    client_ip = request.client.host if request.client else "unknown"
    consumer = QueueSubscriber(maxsize=maxsize)
    subscription = subscribe(consumer)
    logger.info("SSE client connected: %s", client_ip)

    try:
        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break
            try:
                state = await asyncio.wait_for(consumer.get(), timeout=heartbeat)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            payload = json.dumps(jsonable_encoder(serialize(state)))
            yield f"data: {payload}\n\n"
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)
        raise
    finally:
        subscription.unsubscribe()
        if consumer.dropped:
            logger.debug("SSE client %s dropped %d stale updates", client_ip, consumer.dropped)
