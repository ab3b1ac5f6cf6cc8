"""SocialSync event system — typed events, hook registry, and event collection.

Register hooks via @sync.on("event_name") to react to account and metrics
events (notify the user, audit, sync analytics). Hooks run after the database
work they describe has committed and are fail-open: errors are logged and
never break the OAuth flow or a metrics read.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable

logger = logging.getLogger("socialsync.events")


# ---------------------------------------------------------------------------
# Event dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Event:
    """Base event — all events carry a timestamp."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class AccountLinked(Event):
    """Fired when a user links a platform account for the first time."""
    user_id: str = ""
    platform: str = ""
    account_id: uuid.UUID | None = None
    platform_username: str | None = None


@dataclass(frozen=True, slots=True)
class AccountReconnected(Event):
    """Fired when a user re-authorizes an already linked platform."""
    user_id: str = ""
    platform: str = ""
    account_id: uuid.UUID | None = None
    platform_username: str | None = None


@dataclass(frozen=True, slots=True)
class OAuthCallbackRejected(Event):
    user_id: str | None = None
    platform: str = ""
    reason: str = ""


@dataclass(frozen=True, slots=True)
class TokenRefreshed(Event):
    user_id: str = ""
    platform: str = ""
    expires_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class TokenRefreshFailure(Event):
    """Fired when an expired credential could not be renewed; the user must reconnect."""
    user_id: str = ""
    platform: str = ""
    reason: str = ""


@dataclass(frozen=True, slots=True)
class MetricsRefreshed(Event):
    user_id: str = ""
    platform: str = ""
    account_id: uuid.UUID | None = None
    snapshot_id: uuid.UUID | None = None
    followers: int = 0


@dataclass(frozen=True, slots=True)
class MetricsWriteBackFailed(Event):
    """Fired when live metrics were served but could not be cached."""
    user_id: str = ""
    platform: str = ""
    error: str = ""


# ---------------------------------------------------------------------------
# Event name mapping
# ---------------------------------------------------------------------------

EVENT_MAP: dict[str, type[Event]] = {
    "account_linked": AccountLinked,
    "account_reconnected": AccountReconnected,
    "oauth_callback_rejected": OAuthCallbackRejected,
    "token_refreshed": TokenRefreshed,
    "token_refresh_failed": TokenRefreshFailure,
    "metrics_refreshed": MetricsRefreshed,
    "metrics_write_back_failed": MetricsWriteBackFailed,
}


# ---------------------------------------------------------------------------
# Hook registry
# ---------------------------------------------------------------------------

HookCallback = Callable[..., Any]


class HookRegistry:
    """Registry for event hook callbacks. Supports multiple listeners per event."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[HookCallback]] = {}

    def register(self, event_name: str, callback: HookCallback) -> None:
        if event_name not in EVENT_MAP:
            raise ValueError(
                f"Unknown event '{event_name}'. "
                f"Valid events: {', '.join(sorted(EVENT_MAP))}"
            )
        self._hooks.setdefault(event_name, []).append(callback)

    def get_hooks(self, event_name: str) -> list[HookCallback]:
        return self._hooks.get(event_name, [])

    async def emit(self, event_name: str, event: Event) -> None:
        """Fire all registered callbacks for an event. Fail-open: errors are logged."""
        for callback in self.get_hooks(event_name):
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(event)
                else:
                    loop = asyncio.get_running_loop()
                    await loop.run_in_executor(None, callback, event)
            except Exception:
                logger.exception(
                    "Hook error in '%s' handler %s.%s",
                    event_name,
                    callback.__module__,
                    callback.__qualname__,
                )


# ---------------------------------------------------------------------------
# Event collector
# ---------------------------------------------------------------------------

class EventCollector:
    """Collects events during a unit of work, emits them after commit."""

    def __init__(self, registry: HookRegistry) -> None:
        self._registry = registry
        self._pending: list[tuple[str, Event]] = []

    def collect(self, event_name: str, event: Event) -> None:
        self._pending.append((event_name, event))

    async def flush(self) -> None:
        """Emit all pending events. Clears the list."""
        events = self._pending.copy()
        self._pending.clear()
        for event_name, event in events:
            await self._registry.emit(event_name, event)
