"""Error types for the real-time layer.

None of these escape a tick or a broadcast. FetchError and CallbackError are
built so the failure can be logged and reported with its context, then
absorbed. ConfigError is raised at construction time only.
"""

from __future__ import annotations

from typing import Any


class RealtimeError(Exception):
    """Base class for real-time layer errors."""


class FetchError(RealtimeError):
    """A data source failed or timed out during a tick."""

    def __init__(self, source: str, cause: BaseException) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"source {source!r} failed: {cause!r}")


class CallbackError(RealtimeError):
    """A subscriber callback raised while receiving a broadcast."""

    def __init__(self, channel: str, subscriber: Any, cause: BaseException) -> None:
        self.channel = channel
        self.subscriber = subscriber
        self.cause = cause
        super().__init__(f"subscriber {subscriber!r} on {channel!r} raised: {cause!r}")


class ConfigError(RealtimeError, ValueError):
    """Invalid configuration value."""
