"""FastAPI OAuth router — login initiation and callback endpoints for each platform."""

import logging
import urllib.parse
from collections.abc import Callable, Mapping
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from socialsync.config import SocialSyncConfig
from socialsync.core.callback import OAuthCallbackFlow
from socialsync.core.errors import SocialError, UnknownPlatform
from socialsync.core.oauth_sessions import OAuthSessionStore
from socialsync.events import HookRegistry
from socialsync.providers.base import PlatformAdapter

logger = logging.getLogger("socialsync.oauth")


def _error_response(err: SocialError) -> JSONResponse:
    return JSONResponse(status_code=err.status_code, content={"detail": err.to_detail()})


def create_oauth_router(
    config: SocialSyncConfig,
    adapters: Mapping[str, PlatformAdapter],
    sessions: OAuthSessionStore,
    session_factory: async_sessionmaker[AsyncSession],
    hooks: HookRegistry,
    optional_user: Callable,
) -> APIRouter:
    """Create a router with the OAuth endpoints for every configured platform.

    Registers:
        GET /auth/{platform}/login
        GET /auth/{platform}/callback
    """
    router = APIRouter(tags=["oauth"])

    def _adapter(platform: str) -> PlatformAdapter:
        adapter = adapters.get(platform)
        if adapter is None:
            err = UnknownPlatform(f"Platform '{platform}' is not configured", platform=platform)
            raise HTTPException(status_code=err.status_code, detail=err.to_detail())
        return adapter

    @router.get("/auth/{platform}/login")
    async def oauth_login(platform: str, request: Request, reconnect: bool = False):
        """Start the authorization-code flow — redirect to the provider's consent screen."""
        adapter = _adapter(platform)
        auth = adapter.prepare_auth_request()

        store = sessions.bind(platform, request.cookies)
        store.store(auth.login_id, auth.state, auth.code_verifier, reconnect)

        response = RedirectResponse(url=auth.url, status_code=302)
        store.apply_cookies(response)
        logger.info("Starting %s authorization (reconnect=%s)", platform, reconnect)
        return response

    @router.get("/auth/{platform}/callback", name="oauth_callback")
    async def oauth_callback(
        platform: str,
        request: Request,
        user_id: Annotated[str | None, Depends(optional_user)],
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ):
        """Validate the redirect, exchange the code, and store the linked account.

        The OAuth cookies are cleared whether the flow succeeds or is rejected.
        """
        adapter = _adapter(platform)
        store = sessions.bind(platform, request.cookies)
        flow = OAuthCallbackFlow(
            adapter=adapter,
            sessions=store,
            session_factory=session_factory,
            hooks=hooks,
            user_id=user_id,
        )

        try:
            await flow.run(code=code, state=state, error=error, error_description=error_description)
        except SocialError as err:
            response = _error_response(err)
        else:
            query = urllib.parse.urlencode({"connected": platform})
            response = RedirectResponse(url=f"{config.accounts_redirect_url}?{query}", status_code=302)

        store.apply_cookies(response)
        return response

    return router
