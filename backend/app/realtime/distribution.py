"""Subscriber registry and broadcast."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from .errors import CallbackError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Callback = Callable[[T], object]


class Subscription(Generic[T]):
    """Handle returned by Broadcaster.subscribe(). Call it to unsubscribe."""

    __slots__ = ("_broadcaster", "callback", "active")

    def __init__(self, broadcaster: Broadcaster[T], callback: Callback) -> None:
        self._broadcaster = broadcaster
        self.callback = callback
        self.active = True

    def __call__(self) -> None:
        self.unsubscribe()

    def unsubscribe(self) -> None:
        """Remove this subscription. Idempotent."""
        if self.active:
            self.active = False
            self._broadcaster._remove(self)

    def __repr__(self) -> str:
        name = getattr(self.callback, "__qualname__", repr(self.callback))
        return f"Subscription({name}, active={self.active})"


class Broadcaster(Generic[T]):
    """Holds the current state and pushes every new state to subscribers.

    The registry is a tuple replaced on every subscribe/unsubscribe, and
    publish() iterates the tuple it read when the broadcast began. A callback
    that subscribes or unsubscribes mid-broadcast therefore only changes who
    receives the *next* broadcast.

    Callback exceptions are caught per subscriber, logged, and handed to the
    optional `on_error` hook; they never reach the publisher.
    """

    def __init__(
        self,
        initial: T,
        name: str = "broadcast",
        on_error: Callable[[CallbackError], object] | None = None,
    ) -> None:
        self._current = initial
        self._name = name
        self._on_error = on_error
        self._subscribers: tuple[Subscription[T], ...] = ()
        self.delivered = 0
        self.failed_deliveries = 0

    @property
    def current(self) -> T:
        return self._current

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Callback) -> Subscription[T]:
        """Register `callback` and immediately deliver the current state to it."""
        subscription = Subscription(self, callback)
        self._subscribers = (*self._subscribers, subscription)
        logger.debug("%s: subscriber added (%d total)", self._name, len(self._subscribers))
        self._deliver(subscription, self._current)
        return subscription

    def publish(self, state: T) -> None:
        """Make `state` current and deliver it to every registered subscriber."""
        self._current = state
        subscribers = self._subscribers
        for subscription in subscribers:
            self._deliver(subscription, state)

    def clear(self) -> None:
        """Drop every subscriber."""
        for subscription in self._subscribers:
            subscription.active = False
        self._subscribers = ()

    # --- Internal ---

    def _remove(self, subscription: Subscription[T]) -> None:
        self._subscribers = tuple(s for s in self._subscribers if s is not subscription)
        logger.debug("%s: subscriber removed (%d left)", self._name, len(self._subscribers))

    def _deliver(self, subscription: Subscription[T], state: T) -> None:
        try:
            subscription.callback(state)
            self.delivered += 1
        except Exception as e:
            self.failed_deliveries += 1
            error = CallbackError(self._name, subscription, e)
            logger.error("%s: %s", self._name, error, exc_info=e)
            if self._on_error is not None:
                try:
                    self._on_error(error)
                except Exception:
                    logger.exception("%s: on_error hook failed", self._name)
