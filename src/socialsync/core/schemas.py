"""Core schemas — token, metrics, and API response models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from socialsync.models.linked_account import LinkedAccount
    from socialsync.models.metrics_snapshot import MetricsSnapshot

MetricsOrigin = Literal["database", "api"]


class SocialTokens(BaseModel):
    """Provider credentials for one linked account."""
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scopes: str | None = None

    @classmethod
    def from_account(cls, account: LinkedAccount) -> SocialTokens:
        return cls(
            access_token=account.access_token,
            refresh_token=account.refresh_token,
            expires_at=account.expires_at,
            scopes=account.scopes,
        )


class AccountInfo(BaseModel):
    username: str
    display_name: str
    followers: int = 0
    following: int = 0
    profile_image_url: str | None = None


class PostMetrics(BaseModel):
    id: str
    text: str | None = None
    image_url: str | None = None
    created_at: datetime | None = None
    metrics: dict[str, int | float | None] = Field(default_factory=dict)


class MetricsPeriod(BaseModel):
    start: datetime
    end: datetime


class SocialMetrics(BaseModel):
    """Normalized metrics shape every adapter produces.

    ``source`` serializes as ``_source`` and always names where the data came from.
    ``raw`` carries the provider's unnormalized payload.
    """
    account_info: AccountInfo
    posts: list[PostMetrics] = Field(default_factory=list)
    period: MetricsPeriod
    source: MetricsOrigin | None = Field(default=None, serialization_alias="_source")
    captured_at: datetime | None = None
    raw: dict[str, Any] | None = None

    def tagged(self, source: MetricsOrigin) -> SocialMetrics:
        return self.model_copy(update={"source": source})

    def to_response(self, *, include_raw: bool = False) -> dict[str, Any]:
        exclude = None if include_raw else {"raw"}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)


class LinkedAccountResponse(BaseModel):
    """Linked account as exposed to its owner — never includes tokens."""
    id: uuid.UUID
    platform: str
    platform_user_id: str | None
    platform_username: str | None
    expires_at: datetime | None
    scopes: str | None
    metadata: dict[str, Any]
    last_metrics_refresh: datetime | None
    created_at: datetime
    updated_at: datetime
    status: Literal["valid", "expired", "reauth_required"] | None = None

    @classmethod
    def from_account(cls, account: LinkedAccount, status: str | None = None) -> LinkedAccountResponse:
        return cls(
            id=account.id,
            platform=account.platform,
            platform_user_id=account.platform_user_id,
            platform_username=account.platform_username,
            expires_at=account.expires_at,
            scopes=account.scopes,
            metadata=dict(account.account_metadata or {}),
            last_metrics_refresh=account.last_metrics_refresh,
            created_at=account.created_at,
            updated_at=account.updated_at,
            status=status,
        )


class MetricsSnapshotResponse(BaseModel):
    id: uuid.UUID
    platform: str
    followers: int
    following: int
    engagement_rate: float
    total_posts: int
    total_views: int
    avg_likes: float
    avg_comments: float
    captured_at: datetime

    @classmethod
    def from_snapshot(cls, snapshot: MetricsSnapshot) -> MetricsSnapshotResponse:
        return cls(
            id=snapshot.id,
            platform=snapshot.platform,
            followers=snapshot.followers,
            following=snapshot.following,
            engagement_rate=snapshot.engagement_rate,
            total_posts=snapshot.total_posts,
            total_views=snapshot.total_views,
            avg_likes=snapshot.avg_likes,
            avg_comments=snapshot.avg_comments,
            captured_at=snapshot.captured_at,
        )


class AccountRefreshResult(BaseModel):
    """Outcome of the scheduled refresh for one account."""
    account_id: uuid.UUID
    user_id: str
    platform: str
    success: bool
    snapshot_id: uuid.UUID | None = None
    error: str | None = None
    message: str | None = None


class RefreshRunResponse(BaseModel):
    success: bool
    message: str
    succeeded: int
    failed: int
    results: list[AccountRefreshResult]
