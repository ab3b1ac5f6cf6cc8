"""Metrics snapshot repository — append-only metrics cache per linked account."""

import uuid
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from socialsync.models.metrics_snapshot import MetricsSnapshot


async def create_snapshot(session: AsyncSession, snapshot: MetricsSnapshot) -> MetricsSnapshot:
    session.add(snapshot)
    await session.flush()
    await session.refresh(snapshot)
    return snapshot


async def get_latest_snapshot(
    session: AsyncSession,
    account_id: uuid.UUID,
    *,
    captured_after: datetime | None = None,
) -> MetricsSnapshot | None:
    """Most recent snapshot for an account, optionally no older than ``captured_after``."""
    statement = select(MetricsSnapshot).where(MetricsSnapshot.account_id == account_id)
    if captured_after is not None:
        statement = statement.where(MetricsSnapshot.captured_at >= captured_after)
    statement = statement.order_by(MetricsSnapshot.captured_at.desc()).limit(1)
    result = await session.exec(statement)
    return result.first()


async def list_snapshots(
    session: AsyncSession,
    account_id: uuid.UUID,
    *,
    since: datetime | None = None,
    limit: int | None = None,
) -> list[MetricsSnapshot]:
    """Snapshots for an account, newest first."""
    statement = select(MetricsSnapshot).where(MetricsSnapshot.account_id == account_id)
    if since is not None:
        statement = statement.where(MetricsSnapshot.captured_at >= since)
    statement = statement.order_by(MetricsSnapshot.captured_at.desc())
    if limit is not None:
        statement = statement.limit(limit)
    result = await session.exec(statement)
    return list(result.all())
