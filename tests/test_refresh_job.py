"""Tests for the scheduled refresh across all linked accounts."""

import asyncio
import uuid
from types import SimpleNamespace

from conftest import link_account
from socialsync import SocialSync
from socialsync.core.errors import ProviderUnavailable
from socialsync.core.refresh_job import refresh_all_metrics


class FakeReconciler:
    """Stands in for MetricsReconciler.refresh and records how many run at once."""

    def __init__(self, failures: dict[str, Exception] | None = None, delay: float = 0.02) -> None:
        self.failures = failures or {}
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.calls: list[str] = []

    async def refresh(self, adapter, user_id):
        self.calls.append(user_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if user_id in self.failures:
                raise self.failures[user_id]
            return None, SimpleNamespace(id=uuid.uuid4())
        finally:
            self.active -= 1


async def _run(sync: SocialSync, reconciler, **kwargs):
    kwargs.setdefault("adapters", sync.adapters)
    return await refresh_all_metrics(
        session_factory=sync.session_factory, reconciler=reconciler, **kwargs,
    )


class TestRefreshAllMetrics:
    async def test_no_accounts(self, sync: SocialSync):
        assert await _run(sync, FakeReconciler()) == []

    async def test_failures_are_isolated(self, sync: SocialSync):
        for user_id in ("user-1", "user-2", "user-3"):
            await link_account(sync, user_id)
        reconciler = FakeReconciler(failures={
            "user-2": ProviderUnavailable("timed out", platform="twitter"),
            "user-3": RuntimeError("boom"),
        })

        results = {r.user_id: r for r in await _run(sync, reconciler)}

        assert sorted(reconciler.calls) == ["user-1", "user-2", "user-3"]
        assert results["user-1"].success is True
        assert results["user-1"].snapshot_id is not None
        assert results["user-2"].success is False
        assert results["user-2"].error == "provider_unavailable"
        assert results["user-3"].success is False
        assert results["user-3"].error == "internal_error"
        assert results["user-3"].message == "boom"

    async def test_concurrency_is_bounded(self, sync: SocialSync):
        for i in range(6):
            await link_account(sync, f"user-{i}")
        reconciler = FakeReconciler()

        results = await _run(sync, reconciler, concurrency=2)

        assert len(results) == 6
        assert all(r.success for r in results)
        assert reconciler.max_active == 2

    async def test_unconfigured_platform(self, sync: SocialSync):
        await link_account(sync, "user-1", "twitter")
        reconciler = FakeReconciler()

        results = await _run(sync, reconciler, adapters={"youtube": sync.adapter("youtube")})

        assert results[0].success is False
        assert results[0].error == "unknown_platform"
        assert reconciler.calls == []

    async def test_platform_filter(self, sync: SocialSync):
        await link_account(sync, "user-1", "twitter")
        await link_account(sync, "user-1", "youtube")

        results = await _run(sync, FakeReconciler(), platform="youtube")

        assert [r.platform for r in results] == ["youtube"]

    async def test_end_to_end(self, sync: SocialSync, twitter_api):
        await link_account(sync, "user-1")

        results = await sync.refresh_all_metrics()

        assert results[0].success is True
        history = await sync.reconciler.history(sync.adapter("twitter"), "user-1")
        assert [s.id for s in history] == [results[0].snapshot_id]
