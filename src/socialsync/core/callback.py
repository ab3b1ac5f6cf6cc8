"""OAuth callback validation — the ordered checks between the provider redirect and stored tokens.

AwaitingParams -> ParamsPresent -> StateVerified -> VerifierPresent
-> UserAuthenticated -> TokenExchanged -> Stored

Any failed check moves the flow to Rejected with a specific error. The
session entries for the flow are deleted whichever way it ends.
"""

from __future__ import annotations

import enum
import hmac
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from socialsync.core.errors import (
    InvalidRequest,
    SocialError,
    StateMismatch,
    StorageWriteFailed,
    TokenExchangeFailed,
    Unauthenticated,
)
from socialsync.core.oauth_sessions import BoundSessionStore, login_id_from_state
from socialsync.db import get_session
from socialsync.events import AccountLinked, AccountReconnected, HookRegistry, OAuthCallbackRejected
from socialsync.models.linked_account import LinkedAccount
from socialsync.providers.base import PlatformAdapter
from socialsync.repositories import linked_account as account_repo

logger = logging.getLogger("socialsync.oauth")


class CallbackState(str, enum.Enum):
    AWAITING_PARAMS = "awaiting_params"
    PARAMS_PRESENT = "params_present"
    STATE_VERIFIED = "state_verified"
    VERIFIER_PRESENT = "verifier_present"
    USER_AUTHENTICATED = "user_authenticated"
    TOKEN_EXCHANGED = "token_exchanged"
    STORED = "stored"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class CallbackResult:
    account: LinkedAccount
    created: bool
    is_reconnect: bool


class OAuthCallbackFlow:
    """Runs one callback request through the states, in order. Single use."""

    def __init__(
        self,
        *,
        adapter: PlatformAdapter,
        sessions: BoundSessionStore,
        session_factory: async_sessionmaker[AsyncSession],
        hooks: HookRegistry,
        user_id: str | None,
    ) -> None:
        self._adapter = adapter
        self._sessions = sessions
        self._session_factory = session_factory
        self._hooks = hooks
        self._user_id = user_id
        self.state = CallbackState.AWAITING_PARAMS
        self.history: list[CallbackState] = [self.state]
        self.rejection: SocialError | None = None

    def _advance(self, to: CallbackState) -> None:
        self.state = to
        self.history.append(to)

    async def run(
        self,
        *,
        code: str | None,
        state: str | None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> CallbackResult:
        login_id = login_id_from_state(state) if state else None
        try:
            result = await self._run(code, state, login_id, error, error_description)
        except SocialError as exc:
            self.rejection = exc
            self._advance(CallbackState.REJECTED)
            logger.warning(
                "Rejected %s OAuth callback at %s: %s",
                self._adapter.name, self.history[-2].value, exc.code,
            )
            await self._hooks.emit("oauth_callback_rejected", OAuthCallbackRejected(
                user_id=self._user_id, platform=self._adapter.name, reason=exc.code,
            ))
            raise
        finally:
            self._sessions.delete(login_id)

        event_name, event_cls = (
            ("account_reconnected", AccountReconnected)
            if result.is_reconnect or not result.created
            else ("account_linked", AccountLinked)
        )
        await self._hooks.emit(event_name, event_cls(
            user_id=result.account.user_id,
            platform=self._adapter.name,
            account_id=result.account.id,
            platform_username=result.account.platform_username,
        ))
        return result

    async def _run(
        self,
        code: str | None,
        state: str | None,
        login_id: str | None,
        error: str | None,
        error_description: str | None,
    ) -> CallbackResult:
        platform = self._adapter.name

        if error:
            raise InvalidRequest(
                error_description or f"{platform} authorization failed: {error}",
                code="oauth_provider_error", provider_error=error,
            )
        if not code or not state:
            raise InvalidRequest("Missing code or state parameter", code="missing_params")
        self._advance(CallbackState.PARAMS_PRESENT)

        if login_id is None:
            raise StateMismatch("Malformed OAuth state")
        session = self._sessions.get(login_id)
        if session is None:
            raise StateMismatch("No matching OAuth session; it expired or was already used")
        if not hmac.compare_digest(session.state.encode(), state.encode()):
            raise StateMismatch("OAuth state does not match")
        self._advance(CallbackState.STATE_VERIFIED)

        if not session.code_verifier:
            raise InvalidRequest("Missing PKCE code verifier", code="missing_code_verifier")
        self._advance(CallbackState.VERIFIER_PRESENT)

        if not self._user_id:
            raise Unauthenticated("Sign in before linking an account")
        self._advance(CallbackState.USER_AUTHENTICATED)

        try:
            tokens = await self._adapter.exchange_code(code=code, code_verifier=session.code_verifier)
            profile = await self._adapter.fetch_profile(tokens)
        except SocialError as exc:
            raise TokenExchangeFailed(
                f"Could not complete {platform} authorization: {exc.message}",
                platform=platform, upstream_error=exc.code,
            ) from exc
        self._advance(CallbackState.TOKEN_EXCHANGED)

        try:
            async with get_session(self._session_factory) as db:
                account, created = await account_repo.upsert_account(
                    db,
                    user_id=self._user_id,
                    platform=platform,
                    tokens=tokens,
                    platform_user_id=profile.platform_user_id,
                    platform_username=profile.username,
                    metadata=profile.to_metadata(),
                )
        except SQLAlchemyError as exc:
            logger.exception("Could not store %s account", platform)
            raise StorageWriteFailed(f"Could not store {platform} account", platform=platform) from exc
        self._advance(CallbackState.STORED)

        logger.info("Linked %s account %s", platform, account.id)
        return CallbackResult(account=account, created=created, is_reconnect=session.is_reconnect)
