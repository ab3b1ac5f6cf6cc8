"""Tests for event hooks: registry dispatch, deferred collection, SocialSync wiring."""

import logging

import pytest

from socialsync import SocialSync
from socialsync.events import (
    EVENT_MAP,
    AccountLinked,
    EventCollector,
    HookRegistry,
    MetricsRefreshed,
    TokenRefreshed,
)

pytestmark = pytest.mark.asyncio


# ---------------------------------------------------------------------------
# Unit tests: HookRegistry
# ---------------------------------------------------------------------------


class TestHookRegistry:
    async def test_register_valid_event(self):
        registry = HookRegistry()
        registry.register("account_linked", lambda e: None)
        assert len(registry.get_hooks("account_linked")) == 1

    async def test_register_invalid_event_raises(self):
        registry = HookRegistry()
        with pytest.raises(ValueError, match="Unknown event"):
            registry.register("user_created", lambda e: None)

    async def test_every_event_name_registers(self):
        registry = HookRegistry()
        for name in EVENT_MAP:
            registry.register(name, lambda e: None)
        assert all(len(registry.get_hooks(name)) == 1 for name in EVENT_MAP)

    async def test_emit_async_callback(self):
        registry = HookRegistry()
        captured = []

        async def handler(event):
            captured.append(event)

        registry.register("account_linked", handler)
        await registry.emit("account_linked", AccountLinked(user_id="user-1", platform="twitter"))
        assert len(captured) == 1
        assert captured[0].platform == "twitter"

    async def test_emit_sync_callback(self):
        registry = HookRegistry()
        captured = []

        registry.register("token_refreshed", captured.append)
        await registry.emit("token_refreshed", TokenRefreshed(user_id="user-1", platform="youtube"))
        assert captured[0].platform == "youtube"

    async def test_hook_error_does_not_propagate(self, caplog):
        registry = HookRegistry()
        captured = []

        async def broken(event):
            raise RuntimeError("hook exploded")

        async def healthy(event):
            captured.append(event)

        registry.register("metrics_refreshed", broken)
        registry.register("metrics_refreshed", healthy)

        with caplog.at_level(logging.ERROR, logger="socialsync.events"):
            await registry.emit("metrics_refreshed", MetricsRefreshed(user_id="user-1"))

        assert len(captured) == 1
        assert "hook exploded" in caplog.text

    async def test_emit_without_hooks(self):
        await HookRegistry().emit("account_linked", AccountLinked())


class TestEventCollector:
    async def test_flush_emits_in_order(self):
        registry = HookRegistry()
        captured = []
        registry.register("token_refreshed", lambda e: captured.append(("refreshed", e.user_id)))
        registry.register("account_linked", lambda e: captured.append(("linked", e.user_id)))

        collector = EventCollector(registry)
        collector.collect("account_linked", AccountLinked(user_id="a"))
        collector.collect("token_refreshed", TokenRefreshed(user_id="b"))
        assert captured == []

        await collector.flush()
        assert captured == [("linked", "a"), ("refreshed", "b")]

        await collector.flush()
        assert len(captured) == 2


class TestSocialSyncHooks:
    async def test_on_decorator(self, sync: SocialSync):
        @sync.on("account_linked")
        async def handler(event):
            pass

        assert sync.hooks.get_hooks("account_linked") == [handler]

    async def test_on_unknown_event(self, sync: SocialSync):
        with pytest.raises(ValueError):
            sync.add_hook("login", lambda e: None)
