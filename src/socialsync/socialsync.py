"""SocialSync — instance-based configuration and entry point."""

from __future__ import annotations

import dataclasses
import logging
import secrets
from collections.abc import AsyncGenerator
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from socialsync.config import CookieConfig, SocialSyncConfig
from socialsync.core.errors import UnknownPlatform
from socialsync.core.lifecycle import TokenLifecycleManager
from socialsync.core.metrics import MetricSource, MetricsReconciler
from socialsync.core.oauth_sessions import OAuthSessionStore, SessionBackend
from socialsync.core.refresh_job import refresh_all_metrics
from socialsync.core.schemas import AccountRefreshResult, SocialMetrics, SocialTokens
from socialsync.db import create_engine, create_session_factory, get_session
from socialsync.events import HookRegistry
from socialsync.integrations.fastapi.deps import UserResolver, default_user_resolver
from socialsync.providers.base import PlatformAdapter

if TYPE_CHECKING:
    from fastapi import APIRouter

logger = logging.getLogger("socialsync")


class SocialSync:
    """Main SocialSync instance — holds config, database, adapters and the OAuth session map.

    Args:
        database_url: Required async database URL (e.g. postgresql+asyncpg://...).
        adapters: Platform adapters (e.g. TwitterAdapter, YouTubeAdapter).
        state_secret: HMAC key for the signed OAuth state cookie. A random key
            is generated when omitted, which breaks in-flight logins on restart
            and across workers.
        cookie: CookieConfig for the OAuth cookies (default: secure, httponly, lax).
        user_resolver: Maps a request to the signed-in user id. Defaults to
            ``request.state.user_id``.
        session_ttl: Lifetime of an in-flight authorization in seconds (default 600).
        token_expiry_skew: Treat access tokens as expired this many seconds early (default 0).
        provider_timeout: When given, replaces every adapter's HTTP timeout (seconds).
        metrics_max_age_days: Snapshots older than this are not served from cache.
        metrics_period_days: Default window for the metrics history endpoint.
        cron_secret: Shared secret for ``/cron/refresh-metrics`` (None = disabled).
        refresh_concurrency: Accounts refreshed in parallel by the scheduled job.
        accounts_redirect_url: Where a successful callback sends the browser.
        session_backend: Fallback session map (default: in-process).
    """

    def __init__(
        self,
        database_url: str,
        *,
        adapters: list[PlatformAdapter] | None = None,
        state_secret: str | None = None,
        cookie: CookieConfig | None = None,
        user_resolver: UserResolver | None = None,
        session_ttl: int = 600,
        token_expiry_skew: int = 0,
        provider_timeout: float | None = None,
        metrics_max_age_days: int = 1,
        metrics_period_days: int = 30,
        cron_secret: str | None = None,
        refresh_concurrency: int = 4,
        accounts_redirect_url: str = "/accounts",
        session_backend: SessionBackend | None = None,
    ) -> None:
        if state_secret is None:
            logger.warning(
                "No state_secret configured; generated an ephemeral one. "
                "OAuth logins in flight will fail after a restart."
            )
            state_secret = secrets.token_urlsafe(32)

        self._config = SocialSyncConfig(
            database_url=database_url,
            state_secret=state_secret,
            cookie=cookie or CookieConfig(),
            session_ttl_seconds=session_ttl,
            token_expiry_skew_seconds=token_expiry_skew,
            provider_timeout_seconds=provider_timeout or 10.0,
            metrics_max_age_days=metrics_max_age_days,
            metrics_period_days=metrics_period_days,
            cron_secret=cron_secret,
            refresh_concurrency=refresh_concurrency,
            accounts_redirect_url=accounts_redirect_url,
        )
        self._engine = create_engine(database_url)
        self._session_factory = create_session_factory(self._engine)
        self._hooks = HookRegistry()
        self._adapters: dict[str, PlatformAdapter] = {}
        for adapter in adapters or []:
            if provider_timeout is not None:
                adapter = dataclasses.replace(adapter, timeout=provider_timeout)
            if adapter.name in self._adapters:
                raise ValueError(f"Duplicate adapter for platform '{adapter.name}'")
            self._adapters[adapter.name] = adapter
        self._user_resolver = user_resolver or default_user_resolver
        self._sessions = OAuthSessionStore(self._config, fallback=session_backend)
        self._lifecycle = TokenLifecycleManager(
            session_factory=self._session_factory,
            hooks=self._hooks,
            skew_seconds=token_expiry_skew,
        )
        self._reconciler = MetricsReconciler(
            session_factory=self._session_factory,
            lifecycle=self._lifecycle,
            hooks=self._hooks,
            max_age=timedelta(days=metrics_max_age_days),
        )

    @property
    def config(self) -> SocialSyncConfig:
        """Read-only access to the internal config."""
        return self._config

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    @property
    def hooks(self) -> HookRegistry:
        return self._hooks

    @property
    def sessions(self) -> OAuthSessionStore:
        """The process-scoped OAuth session store."""
        return self._sessions

    @property
    def lifecycle(self) -> TokenLifecycleManager:
        return self._lifecycle

    @property
    def reconciler(self) -> MetricsReconciler:
        return self._reconciler

    @property
    def adapters(self) -> dict[str, PlatformAdapter]:
        return dict(self._adapters)

    def adapter(self, platform: str) -> PlatformAdapter:
        """Adapter for ``platform``; raises UnknownPlatform when none is configured."""
        adapter = self._adapters.get(platform)
        if adapter is None:
            raise UnknownPlatform(f"Platform '{platform}' is not configured", platform=platform)
        return adapter

    # ------ Event hooks ------

    def on(self, event_name: str):
        """Decorator to register an event hook.

        Usage:
            @sync.on("account_linked")
            async def handle(event):
                print(event.platform)
        """
        def decorator(fn):
            self._hooks.register(event_name, fn)
            return fn
        return decorator

    def add_hook(self, event_name: str, callback) -> None:
        """Register an event hook callback programmatically."""
        self._hooks.register(event_name, callback)

    # ------ Database session helpers ------

    def get_session(self) -> AsyncGenerator[AsyncSession]:
        """Context manager for service-level code (non-FastAPI)."""
        return get_session(self._session_factory)

    # ------ Core operations ------

    async def ensure_valid_tokens(self, platform: str, user_id: str) -> SocialTokens | None:
        """Usable tokens for a user's linked account, refreshing them if expired.

        Returns None when the user has not linked ``platform``.

        Raises:
            TokenRefreshFailed: The user has to reconnect the account.
            ProviderUnavailable: The provider could not be reached.
        """
        return await self._lifecycle.ensure_valid_tokens(self.adapter(platform), user_id)

    async def get_metrics(
        self,
        platform: str,
        user_id: str,
        source: MetricSource | str = MetricSource.AUTO,
    ) -> SocialMetrics:
        """Metrics from the cache or the provider, per ``source`` ("auto", "db" or "api")."""
        return await self._reconciler.get_metrics(self.adapter(platform), user_id, source)

    async def refresh_all_metrics(self, *, platform: str | None = None) -> list[AccountRefreshResult]:
        """Run the scheduled refresh over every linked account (optionally one platform)."""
        return await refresh_all_metrics(
            session_factory=self._session_factory,
            adapters=self._adapters,
            reconciler=self._reconciler,
            concurrency=self._config.refresh_concurrency,
            platform=platform,
        )

    # ------ FastAPI integration ------

    def fastapi_router(self) -> APIRouter:
        """Create a FastAPI router with every SocialSync endpoint, bound to this instance.

        Includes: OAuth login/callback, metrics, metrics history, accounts,
        and the scheduled refresh trigger (403 until ``cron_secret`` is set).
        """
        from fastapi import APIRouter

        from socialsync.integrations.fastapi.deps import (
            create_current_user_dep,
            create_optional_user_dep,
        )
        from socialsync.integrations.fastapi.oauth_router import create_oauth_router
        from socialsync.integrations.fastapi.router import create_cron_router, create_metrics_router

        router = APIRouter()
        router.include_router(create_oauth_router(
            self._config,
            self._adapters,
            self._sessions,
            self._session_factory,
            self._hooks,
            create_optional_user_dep(self._user_resolver),
        ))
        router.include_router(create_metrics_router(
            self._config,
            self._adapters,
            self._session_factory,
            self._lifecycle,
            self._reconciler,
            create_current_user_dep(self._user_resolver),
        ))
        router.include_router(create_cron_router(
            self._config, self._adapters, self._session_factory, self._reconciler,
        ))
        return router

    # ------ Schema ------

    async def migrate(self) -> None:
        """Run pending database migrations. Safe to call on every startup.

        Tracks state in the ``socialsync_alembic_version`` table, separate
        from any Alembic setup the host application has.
        """
        from pathlib import Path

        from alembic.config import Config

        config = Config()
        config.set_main_option(
            "script_location",
            str(Path(__file__).parent / "migrations"),
        )

        async with self._engine.begin() as conn:
            await conn.run_sync(self._run_upgrade, config)

    @staticmethod
    def _run_upgrade(connection, config) -> None:
        from alembic import command

        config.attributes["connection"] = connection
        command.upgrade(config, "head")

    # ------ Lifecycle ------

    async def dispose(self) -> None:
        """Dispose the database engine (for clean shutdown)."""
        await self._engine.dispose()
