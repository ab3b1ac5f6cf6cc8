"""Linked accounts and metrics snapshots.

Revision ID: 001
Create Date: 2026-10-16
"""

import sqlalchemy as sa
from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "socialsync_linked_accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("platform_user_id", sa.String(255), nullable=True),
        sa.Column("platform_username", sa.String(255), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scopes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("last_metrics_refresh", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "platform"),
    )
    op.create_index("ix_socialsync_linked_accounts_user_id", "socialsync_linked_accounts", ["user_id"])
    op.create_index("ix_socialsync_linked_accounts_platform", "socialsync_linked_accounts", ["platform"])

    op.create_table(
        "socialsync_metrics_snapshots",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Uuid(),
            sa.ForeignKey("socialsync_linked_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("followers", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("following", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("engagement_rate", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_posts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_views", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("avg_likes", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("avg_comments", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("raw_data", sa.JSON(), nullable=True),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_socialsync_metrics_snapshots_account_captured",
        "socialsync_metrics_snapshots",
        ["account_id", "captured_at"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_socialsync_metrics_snapshots_account_captured",
        table_name="socialsync_metrics_snapshots",
    )
    op.drop_table("socialsync_metrics_snapshots")
    op.drop_index("ix_socialsync_linked_accounts_platform", table_name="socialsync_linked_accounts")
    op.drop_index("ix_socialsync_linked_accounts_user_id", table_name="socialsync_linked_accounts")
    op.drop_table("socialsync_linked_accounts")
