"""Token lifecycle — decide whether a stored credential is usable and refresh it when not.

Per linked account the credential is ``valid`` until ``expires_at`` (checked
lazily at use time), then ``expired``. An expired credential goes back to
``valid`` through a refresh that persists the new access token, expiry and
(when rotated) refresh token in one write, or ends in ``refresh_failed`` when
there is no refresh token or the provider rejects it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from socialsync.core.errors import (
    NoLinkedAccount,
    ProviderRejected,
    ProviderUnavailable,
    StorageWriteFailed,
    TokenRefreshFailed,
)
from socialsync.core.schemas import SocialTokens
from socialsync.db import get_session
from socialsync.events import EventCollector, HookRegistry, TokenRefreshed, TokenRefreshFailure
from socialsync.models.linked_account import LinkedAccount
from socialsync.providers.base import PlatformAdapter
from socialsync.repositories import linked_account as account_repo
from socialsync.utils import utc_now

logger = logging.getLogger("socialsync.tokens")


class TokenStatus(str, enum.Enum):
    VALID = "valid"
    EXPIRED = "expired"
    REFRESH_FAILED = "refresh_failed"


class TokenLifecycleManager:
    """Single entry point for usable provider credentials.

    Refreshes are mutually exclusive per ``(user_id, platform)`` within this
    process: concurrent callers await the same in-flight refresh task.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        hooks: HookRegistry,
        skew_seconds: int = 0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._hooks = hooks
        self._skew = skew_seconds
        self._clock = clock or utc_now
        self._inflight: dict[tuple[str, str], asyncio.Task[SocialTokens]] = {}

    def _expired(self, adapter: PlatformAdapter, account: LinkedAccount) -> bool:
        return adapter.is_token_expired(
            account.expires_at, now=self._clock(), skew_seconds=self._skew,
        )

    def status(self, adapter: PlatformAdapter, account: LinkedAccount) -> TokenStatus:
        """Status as of now, without touching the provider.

        An expired credential with no refresh token can only fail to refresh.
        """
        if not self._expired(adapter, account):
            return TokenStatus.VALID
        if not account.refresh_token:
            return TokenStatus.REFRESH_FAILED
        return TokenStatus.EXPIRED

    async def ensure_valid_tokens(self, adapter: PlatformAdapter, user_id: str) -> SocialTokens | None:
        """Usable tokens for the user's account on ``adapter``'s platform.

        Returns None when no account is linked, the stored tokens unchanged
        while they are valid, or freshly refreshed tokens once expired.

        Raises:
            TokenRefreshFailed: No refresh token, or the provider rejected it.
            ProviderUnavailable: The refresh call failed in transit.
        """
        async with get_session(self._session_factory) as session:
            account = await account_repo.get_account(session, user_id, adapter.name)
        if account is None:
            return None
        if not self._expired(adapter, account):
            return SocialTokens.from_account(account)
        return await self._shared_refresh(adapter, user_id)

    async def _shared_refresh(self, adapter: PlatformAdapter, user_id: str) -> SocialTokens:
        key = (user_id, adapter.name)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._refresh(adapter, user_id))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            logger.debug("Joining in-flight %s token refresh", adapter.name)
        # One waiter being cancelled must not cancel the refresh for the others.
        return await asyncio.shield(task)

    def _forget(self, key: tuple[str, str], task: asyncio.Task[SocialTokens]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            task.exception()  # retrieved; every waiter may have gone away

    async def _refresh(self, adapter: PlatformAdapter, user_id: str) -> SocialTokens:
        events = EventCollector(self._hooks)
        try:
            async with get_session(self._session_factory) as session:
                # Re-read: a refresh that finished just before this one already rotated the token.
                account = await account_repo.get_account(session, user_id, adapter.name)
                if account is None:
                    raise NoLinkedAccount(f"No {adapter.name} account linked", platform=adapter.name)
                if not self._expired(adapter, account):
                    return SocialTokens.from_account(account)
                if not account.refresh_token:
                    raise TokenRefreshFailed(
                        f"{adapter.name} access token expired and no refresh token is stored; "
                        "reconnect the account",
                        platform=adapter.name, reauth_required=True,
                    )
                try:
                    fresh = await adapter.refresh_tokens(account.refresh_token)
                except ProviderRejected as exc:
                    raise TokenRefreshFailed(
                        f"{adapter.name} rejected the refresh token; reconnect the account",
                        platform=adapter.name, reauth_required=True,
                    ) from exc
                account = await account_repo.update_tokens(session, account, fresh)
                tokens = SocialTokens.from_account(account)
                events.collect("token_refreshed", TokenRefreshed(
                    user_id=user_id, platform=adapter.name, expires_at=tokens.expires_at,
                ))
        except TokenRefreshFailed as exc:
            logger.warning("Token refresh for %s failed: %s", adapter.name, exc.message)
            await self._hooks.emit("token_refresh_failed", TokenRefreshFailure(
                user_id=user_id, platform=adapter.name, reason=exc.code,
            ))
            raise
        except ProviderUnavailable as exc:
            logger.warning("Token refresh for %s deferred: %s", adapter.name, exc.message)
            raise
        except SQLAlchemyError as exc:
            logger.exception("Could not persist refreshed %s tokens", adapter.name)
            raise StorageWriteFailed(
                f"Could not persist refreshed {adapter.name} tokens", platform=adapter.name,
            ) from exc

        logger.info("Refreshed %s access token", adapter.name)
        await events.flush()
        return tokens
