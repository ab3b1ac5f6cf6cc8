"""Metrics reconciliation — answer from the snapshot cache or go live to the provider."""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from socialsync.core.errors import NoCachedMetrics, NoLinkedAccount, StorageWriteFailed
from socialsync.core.lifecycle import TokenLifecycleManager
from socialsync.core.schemas import SocialMetrics
from socialsync.db import get_session
from socialsync.events import HookRegistry, MetricsRefreshed, MetricsWriteBackFailed
from socialsync.models.linked_account import LinkedAccount
from socialsync.models.metrics_snapshot import MetricsSnapshot
from socialsync.providers.base import PlatformAdapter
from socialsync.repositories import linked_account as account_repo
from socialsync.repositories import metrics_snapshot as snapshot_repo
from socialsync.utils import utc_now
from socialsync.utils.best_effort import attempt

logger = logging.getLogger("socialsync.metrics")


class MetricSource(str, enum.Enum):
    AUTO = "auto"  # cache first, live on miss or read failure
    DB = "db"  # cache only, never a live call
    API = "api"  # always live


class MetricsReconciler:
    """Decides where metrics come from and keeps the cache current.

    The ``source`` tag on every result names where the data actually came from.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        lifecycle: TokenLifecycleManager,
        hooks: HookRegistry,
        max_age: timedelta = timedelta(days=1),
    ) -> None:
        self._session_factory = session_factory
        self._lifecycle = lifecycle
        self._hooks = hooks
        self._max_age = max_age

    async def _account(self, adapter: PlatformAdapter, user_id: str) -> LinkedAccount:
        async with get_session(self._session_factory) as session:
            account = await account_repo.get_account(session, user_id, adapter.name)
        if account is None:
            raise NoLinkedAccount(f"No {adapter.name} account linked", platform=adapter.name)
        return account

    async def _read_cache(self, adapter: PlatformAdapter, account: LinkedAccount) -> SocialMetrics | None:
        async with get_session(self._session_factory) as session:
            return await adapter.get_metrics_from_database(session, account, max_age=self._max_age)

    async def get_metrics(
        self,
        adapter: PlatformAdapter,
        user_id: str,
        source: MetricSource | str = MetricSource.AUTO,
    ) -> SocialMetrics:
        """Metrics for the user's account on ``adapter``'s platform.

        Raises:
            NoLinkedAccount: Nothing linked for this platform.
            NoCachedMetrics: ``db`` source and no fresh snapshot could be read.
            TokenRefreshFailed / ProviderUnavailable: From the live path.
        """
        source = MetricSource(source)
        account = await self._account(adapter, user_id)

        if source in (MetricSource.DB, MetricSource.AUTO):
            cached = await attempt(
                self._read_cache, adapter, account,
                logger=logger, description=f"{adapter.name} metrics cache read",
            )
            if cached.ok and cached.value is not None:
                logger.debug("Serving %s metrics from database", adapter.name)
                return cached.value.tagged("database")
            if source is MetricSource.DB:
                raise NoCachedMetrics(
                    f"No cached {adapter.name} metrics available", platform=adapter.name,
                )

        metrics = await self._fetch_live(adapter, user_id)
        write = await attempt(
            self._write_back, adapter, user_id, metrics,
            logger=logger, description=f"{adapter.name} metrics write-back",
        )
        if write.ok:
            await self._emit_refreshed(adapter, user_id, write.value)
        else:
            await self._hooks.emit("metrics_write_back_failed", MetricsWriteBackFailed(
                user_id=user_id, platform=adapter.name, error=str(write.error),
            ))
        return metrics.tagged("api")

    async def refresh(self, adapter: PlatformAdapter, user_id: str) -> tuple[SocialMetrics, MetricsSnapshot]:
        """Live fetch whose purpose is the write: a storage failure fails the call."""
        metrics = await self._fetch_live(adapter, user_id)
        try:
            snapshot = await self._write_back(adapter, user_id, metrics)
        except SQLAlchemyError as exc:
            logger.exception("Could not store %s metrics snapshot", adapter.name)
            raise StorageWriteFailed(
                f"Could not store {adapter.name} metrics", platform=adapter.name,
            ) from exc
        await self._emit_refreshed(adapter, user_id, snapshot)
        return metrics.tagged("api"), snapshot

    async def history(
        self,
        adapter: PlatformAdapter,
        user_id: str,
        *,
        days: int = 30,
        now: datetime | None = None,
    ) -> list[MetricsSnapshot]:
        """Stored snapshots from the last ``days`` days, newest first. Read-only."""
        account = await self._account(adapter, user_id)
        since = (now or utc_now()) - timedelta(days=days)
        async with get_session(self._session_factory) as session:
            return await snapshot_repo.list_snapshots(session, account.id, since=since)

    async def _fetch_live(self, adapter: PlatformAdapter, user_id: str) -> SocialMetrics:
        tokens = await self._lifecycle.ensure_valid_tokens(adapter, user_id)
        if tokens is None:
            raise NoLinkedAccount(f"No {adapter.name} account linked", platform=adapter.name)
        metrics = await adapter.get_metrics(tokens, user_id)
        if metrics.captured_at is None:
            metrics = metrics.model_copy(update={"captured_at": utc_now()})
        return metrics

    async def _write_back(self, adapter: PlatformAdapter, user_id: str, metrics: SocialMetrics) -> MetricsSnapshot:
        async with get_session(self._session_factory) as session:
            account = await account_repo.get_account(session, user_id, adapter.name)
            if account is None:
                raise NoLinkedAccount(f"No {adapter.name} account linked", platform=adapter.name)
            return await adapter.store_metrics_in_database(session, account, metrics)

    async def _emit_refreshed(self, adapter: PlatformAdapter, user_id: str, snapshot: MetricsSnapshot) -> None:
        await self._hooks.emit("metrics_refreshed", MetricsRefreshed(
            user_id=user_id,
            platform=adapter.name,
            account_id=snapshot.account_id,
            snapshot_id=snapshot.id,
            followers=snapshot.followers,
        ))
