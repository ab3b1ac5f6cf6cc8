"""Scheduled metrics refresh across every linked account."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from socialsync.core.errors import SocialError
from socialsync.core.metrics import MetricsReconciler
from socialsync.core.schemas import AccountRefreshResult
from socialsync.db import get_session
from socialsync.models.linked_account import LinkedAccount
from socialsync.providers.base import PlatformAdapter
from socialsync.repositories import linked_account as account_repo

logger = logging.getLogger("socialsync.cron")


async def refresh_all_metrics(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    adapters: Mapping[str, PlatformAdapter],
    reconciler: MetricsReconciler,
    concurrency: int = 4,
    platform: str | None = None,
) -> list[AccountRefreshResult]:
    """Refresh tokens and metrics for each linked account, at most ``concurrency`` at a time.

    Accounts are independent: one failing never stops the others.
    """
    async with get_session(session_factory) as session:
        accounts = await account_repo.list_accounts(session, platform=platform)

    semaphore = asyncio.Semaphore(concurrency)

    async def refresh_one(account: LinkedAccount) -> AccountRefreshResult:
        result = AccountRefreshResult(
            account_id=account.id,
            user_id=account.user_id,
            platform=account.platform,
            success=False,
        )
        adapter = adapters.get(account.platform)
        if adapter is None:
            return result.model_copy(update={
                "error": "unknown_platform",
                "message": f"No adapter configured for {account.platform}",
            })

        async with semaphore:
            try:
                _, snapshot = await reconciler.refresh(adapter, account.user_id)
            except SocialError as exc:
                logger.warning("Refresh of %s account %s failed: %s", account.platform, account.id, exc.code)
                return result.model_copy(update={"error": exc.code, "message": exc.message})
            except Exception as exc:
                logger.exception("Unexpected error refreshing %s account %s", account.platform, account.id)
                return result.model_copy(update={"error": "internal_error", "message": str(exc)})

        return result.model_copy(update={"success": True, "snapshot_id": snapshot.id})

    results = await asyncio.gather(*(refresh_one(account) for account in accounts))
    succeeded = sum(1 for r in results if r.success)
    logger.info("Metrics refresh finished: %d succeeded, %d failed", succeeded, len(results) - succeeded)
    return list(results)
