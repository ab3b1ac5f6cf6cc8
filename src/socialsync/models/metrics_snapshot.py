import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Index
from sqlmodel import Column, Field, SQLModel

from socialsync.utils import TZDateTime, utc_now


class MetricsSnapshot(SQLModel, table=True):
    __tablename__ = "socialsync_metrics_snapshots"
    __table_args__ = (Index("ix_socialsync_metrics_snapshots_account_captured", "account_id", "captured_at"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    account_id: uuid.UUID = Field(foreign_key="socialsync_linked_accounts.id", ondelete="CASCADE")
    platform: str = Field(max_length=50)
    followers: int = Field(default=0)
    following: int = Field(default=0)
    engagement_rate: float = Field(default=0.0)
    total_posts: int = Field(default=0)
    total_views: int = Field(default=0)
    avg_likes: float = Field(default=0.0)
    avg_comments: float = Field(default=0.0)
    raw_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    captured_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(TZDateTime(), nullable=False),
    )
