"""Linked account repository — database operations for connected social accounts."""

from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from socialsync.core.schemas import SocialTokens
from socialsync.models.linked_account import LinkedAccount
from socialsync.utils import utc_now


async def get_account(
    session: AsyncSession,
    user_id: str,
    platform: str,
) -> LinkedAccount | None:
    """Get the account a user linked for a platform."""
    statement = select(LinkedAccount).where(
        LinkedAccount.user_id == user_id,
        LinkedAccount.platform == platform,
    )
    result = await session.exec(statement)
    return result.first()


async def list_accounts(
    session: AsyncSession,
    *,
    platform: str | None = None,
) -> list[LinkedAccount]:
    """All linked accounts, optionally for one platform, oldest first."""
    statement = select(LinkedAccount).order_by(LinkedAccount.created_at)
    if platform is not None:
        statement = statement.where(LinkedAccount.platform == platform)
    result = await session.exec(statement)
    return list(result.all())


async def list_accounts_for_user(session: AsyncSession, user_id: str) -> list[LinkedAccount]:
    statement = (
        select(LinkedAccount)
        .where(LinkedAccount.user_id == user_id)
        .order_by(LinkedAccount.platform)
    )
    result = await session.exec(statement)
    return list(result.all())


def _apply_link(
    account: LinkedAccount,
    tokens: SocialTokens,
    platform_user_id: str | None,
    platform_username: str | None,
    metadata: dict[str, Any] | None,
) -> None:
    account.access_token = tokens.access_token
    if tokens.refresh_token:
        account.refresh_token = tokens.refresh_token
    account.expires_at = tokens.expires_at
    account.scopes = tokens.scopes
    if platform_user_id is not None:
        account.platform_user_id = platform_user_id
    if platform_username is not None:
        account.platform_username = platform_username
    if metadata is not None:
        account.account_metadata = {**(account.account_metadata or {}), **metadata}
    account.updated_at = utc_now()


async def upsert_account(
    session: AsyncSession,
    *,
    user_id: str,
    platform: str,
    tokens: SocialTokens,
    platform_user_id: str | None = None,
    platform_username: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> tuple[LinkedAccount, bool]:
    """Insert or overwrite the (user_id, platform) row.

    A reconnect replaces the access token, expiry and scopes; the stored refresh
    token survives unless the provider issued a new one. Returns ``(account, created)``.
    """
    account = await get_account(session, user_id, platform)
    if account is None:
        account = LinkedAccount(
            user_id=user_id,
            platform=platform,
            access_token=tokens.access_token,
        )
        _apply_link(account, tokens, platform_user_id, platform_username, metadata)
        session.add(account)
        try:
            await session.flush()
        except IntegrityError:
            # Concurrent callback for the same pair won the insert; overwrite its row.
            await session.rollback()
            account = await get_account(session, user_id, platform)
            if account is None:
                raise
        else:
            await session.refresh(account)
            return account, True

    _apply_link(account, tokens, platform_user_id, platform_username, metadata)
    session.add(account)
    await session.flush()
    await session.refresh(account)
    return account, False


async def update_tokens(
    session: AsyncSession,
    account: LinkedAccount,
    tokens: SocialTokens,
) -> LinkedAccount:
    """Replace access token and expiry together; keep the refresh token if none was issued."""
    account.access_token = tokens.access_token
    account.expires_at = tokens.expires_at
    if tokens.refresh_token:
        account.refresh_token = tokens.refresh_token
    if tokens.scopes:
        account.scopes = tokens.scopes
    account.updated_at = utc_now()
    session.add(account)
    await session.flush()
    await session.refresh(account)
    return account


async def update_metadata(
    session: AsyncSession,
    account: LinkedAccount,
    metadata: dict[str, Any],
    *,
    refreshed_at: datetime | None = None,
) -> LinkedAccount:
    """Merge denormalized profile fields into the account and stamp the refresh time."""
    now = refreshed_at or utc_now()
    account.account_metadata = {**(account.account_metadata or {}), **metadata}
    account.last_metrics_refresh = now
    account.updated_at = now
    session.add(account)
    await session.flush()
    await session.refresh(account)
    return account
