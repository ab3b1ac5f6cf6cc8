"""Example app using SocialSync.

Links Twitter/X and YouTube accounts and serves their metrics:
  - /auth/{platform}/login and /auth/{platform}/callback run the OAuth + PKCE flow
  - /metrics/{platform}?source=auto|db|api serves cached or live metrics
  - /cron/refresh-metrics?key=... is meant for an external scheduler

Authentication of the application's own users is out of scope. This demo
trusts an ``X-User-Id`` header; put your real auth in front of it.

Run:  uvicorn main:app --reload --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from socialsync import CookieConfig, SocialSync, TwitterAdapter, YouTubeAdapter

BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000")


def demo_user(request: Request) -> str | None:
    """Demo only: trust a header. Replace with your session/JWT lookup."""
    return request.headers.get("X-User-Id")


sync = SocialSync(
    database_url=os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./socialsync.db"),
    state_secret=os.environ.get("SOCIALSYNC_STATE_SECRET"),
    cookie=CookieConfig(secure=False),  # secure=False for localhost dev
    user_resolver=demo_user,
    cron_secret=os.environ.get("CRON_SECRET"),
    accounts_redirect_url="/",  # lands on "/?connected=twitter"
    # Setup:
    #   1. Twitter/X: https://developer.x.com/en/portal/dashboard
    #      - OAuth 2.0, confidential client, redirect URI:
    #        http://localhost:8000/auth/twitter/callback
    #      - Use "localhost" consistently: cookies set on 127.0.0.1 are not
    #        sent to localhost (the in-memory fallback covers that case).
    #
    #   2. YouTube: https://console.cloud.google.com/apis/credentials
    #      - Enable "YouTube Data API v3", create an OAuth client (Web application)
    #      - Redirect URI: http://localhost:8000/auth/youtube/callback
    adapters=[
        TwitterAdapter(
            client_id=os.environ.get("TWITTER_CLIENT_ID", ""),
            client_secret=os.environ.get("TWITTER_CLIENT_SECRET", ""),
            redirect_uri=f"{BASE_URL}/auth/twitter/callback",
        ),
        YouTubeAdapter(
            client_id=os.environ.get("YOUTUBE_CLIENT_ID", ""),
            client_secret=os.environ.get("YOUTUBE_CLIENT_SECRET", ""),
            redirect_uri=f"{BASE_URL}/auth/youtube/callback",
        ),
    ],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await sync.migrate()
    yield
    await sync.dispose()


app = FastAPI(title="SocialSync Example", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Event hooks fire after the database work commits. Errors are logged, never propagate.
# ---------------------------------------------------------------------------


@sync.on("account_linked")
async def on_account_linked(event):
    print(f"[hook] {event.user_id} linked {event.platform} as {event.platform_username}")


@sync.on("token_refresh_failed")
async def on_token_refresh_failed(event):
    """Ask the user to reconnect."""
    print(f"[hook] {event.platform} tokens for {event.user_id} need re-authorization ({event.reason})")


@sync.on("metrics_write_back_failed")
async def on_write_back_failed(event):
    print(f"[hook] Could not cache {event.platform} metrics: {event.error}")


# /auth/{platform}/login, /auth/{platform}/callback, /metrics/{platform},
# /metrics/{platform}/history, /accounts, /cron/refresh-metrics
app.include_router(sync.fastapi_router())


@app.get("/")
async def root():
    return {"message": "SocialSync Example", "platforms": sorted(sync.adapters), "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
