import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel, UniqueConstraint

from socialsync.utils import TZDateTime, utc_now


class LinkedAccount(SQLModel, table=True):
    __tablename__ = "socialsync_linked_accounts"
    __table_args__ = (UniqueConstraint("user_id", "platform"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(max_length=255, index=True)
    platform: str = Field(max_length=50, index=True)
    platform_user_id: str | None = Field(default=None, max_length=255)
    platform_username: str | None = Field(default=None, max_length=255)
    access_token: str
    refresh_token: str | None = Field(default=None)
    expires_at: datetime | None = Field(
        default=None,
        sa_column=Column(TZDateTime(), nullable=True),
    )
    scopes: str | None = Field(default=None)
    # "metadata" is reserved on declarative classes; the column keeps the name.
    account_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSON, nullable=False, default=dict),
    )
    last_metrics_refresh: datetime | None = Field(
        default=None,
        sa_column=Column(TZDateTime(), nullable=True),
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(TZDateTime(), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(TZDateTime(), nullable=False),
    )
