"""FastAPI routers — metrics reads, linked account listing, and the scheduled refresh trigger."""

import hmac
import logging
from collections.abc import Callable, Mapping
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from socialsync.config import SocialSyncConfig
from socialsync.core.errors import SocialError, UnknownPlatform
from socialsync.core.lifecycle import TokenLifecycleManager, TokenStatus
from socialsync.core.metrics import MetricSource, MetricsReconciler
from socialsync.core.refresh_job import refresh_all_metrics
from socialsync.core.schemas import (
    LinkedAccountResponse,
    MetricsSnapshotResponse,
    RefreshRunResponse,
)
from socialsync.db import get_session
from socialsync.providers.base import PlatformAdapter
from socialsync.repositories import linked_account as account_repo

logger = logging.getLogger("socialsync.metrics")

_ACCOUNT_STATUS = {
    TokenStatus.VALID: "valid",
    TokenStatus.EXPIRED: "expired",
    TokenStatus.REFRESH_FAILED: "reauth_required",
}


def _http_error(err: SocialError) -> HTTPException:
    return HTTPException(status_code=err.status_code, detail=err.to_detail())


def create_metrics_router(
    config: SocialSyncConfig,
    adapters: Mapping[str, PlatformAdapter],
    session_factory: async_sessionmaker[AsyncSession],
    lifecycle: TokenLifecycleManager,
    reconciler: MetricsReconciler,
    current_user: Callable,
) -> APIRouter:
    """Create a router with the per-user endpoints.

    Registers:
        GET /metrics/{platform}
        GET /metrics/{platform}/history
        GET /accounts
    """
    router = APIRouter(tags=["metrics"])

    def _adapter(platform: str) -> PlatformAdapter:
        adapter = adapters.get(platform)
        if adapter is None:
            raise _http_error(UnknownPlatform(f"Platform '{platform}' is not configured", platform=platform))
        return adapter

    @router.get("/metrics/{platform}")
    async def get_metrics(
        platform: str,
        user_id: Annotated[str, Depends(current_user)],
        source: MetricSource = MetricSource.AUTO,
        raw: bool = False,
    ):
        """Normalized metrics with ``_source`` naming where they came from."""
        adapter = _adapter(platform)
        try:
            metrics = await reconciler.get_metrics(adapter, user_id, source)
        except SocialError as err:
            raise _http_error(err)
        return metrics.to_response(include_raw=raw)

    @router.get("/metrics/{platform}/history", response_model=list[MetricsSnapshotResponse])
    async def metrics_history(
        platform: str,
        user_id: Annotated[str, Depends(current_user)],
        days: Annotated[int, Query(ge=1, le=365)] = config.metrics_period_days,
    ):
        """Stored snapshots for the account, newest first."""
        adapter = _adapter(platform)
        try:
            snapshots = await reconciler.history(adapter, user_id, days=days)
        except SocialError as err:
            raise _http_error(err)
        return [MetricsSnapshotResponse.from_snapshot(s) for s in snapshots]

    @router.get("/accounts", response_model=list[LinkedAccountResponse])
    async def list_accounts(
        user_id: Annotated[str, Depends(current_user)],
        include_status: bool = False,
    ):
        """The user's linked accounts. Tokens are never included."""
        async with get_session(session_factory) as session:
            accounts = await account_repo.list_accounts_for_user(session, user_id)

        results = []
        for account in accounts:
            status = None
            adapter = adapters.get(account.platform)
            if include_status and adapter is not None:
                status = _ACCOUNT_STATUS[lifecycle.status(adapter, account)]
            results.append(LinkedAccountResponse.from_account(account, status=status))
        return results

    return router


def create_cron_router(
    config: SocialSyncConfig,
    adapters: Mapping[str, PlatformAdapter],
    session_factory: async_sessionmaker[AsyncSession],
    reconciler: MetricsReconciler,
) -> APIRouter:
    """Create the router for the scheduler-driven refresh.

    Registers:
        GET /cron/refresh-metrics?key=...
    """
    router = APIRouter(tags=["cron"])

    @router.get("/cron/refresh-metrics", response_model=RefreshRunResponse)
    async def refresh_metrics(key: str | None = None, platform: str | None = None):
        """Refresh tokens and metrics for every linked account. Gated by a shared secret."""
        if config.cron_secret is None:
            raise HTTPException(
                status_code=403,
                detail={"error": "cron_disabled", "message": "No cron secret is configured"},
            )
        if key is None or not hmac.compare_digest(key.encode(), config.cron_secret.encode()):
            logger.warning("Rejected metrics refresh trigger with an invalid key")
            raise HTTPException(
                status_code=401,
                detail={"error": "invalid_cron_key", "message": "Invalid or missing key"},
            )

        results = await refresh_all_metrics(
            session_factory=session_factory,
            adapters=adapters,
            reconciler=reconciler,
            concurrency=config.refresh_concurrency,
            platform=platform,
        )
        succeeded = sum(1 for r in results if r.success)
        failed = len(results) - succeeded
        return RefreshRunResponse(
            success=failed == 0,
            message=f"Refreshed {succeeded} of {len(results)} accounts",
            succeeded=succeeded,
            failed=failed,
            results=results,
        )

    return router
