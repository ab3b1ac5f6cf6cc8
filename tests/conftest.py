"""Test fixtures for SocialSync integration tests."""

from datetime import datetime, timedelta
from http.cookies import SimpleCookie
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from socialsync import CookieConfig, SocialSync, TwitterAdapter, YouTubeAdapter
from socialsync.core.schemas import (
    AccountInfo,
    MetricsPeriod,
    PostMetrics,
    SocialMetrics,
    SocialTokens,
)
from socialsync.models.linked_account import LinkedAccount
from socialsync.providers.base import PlatformProfile
from socialsync.repositories import linked_account as account_repo
from socialsync.utils import utc_now

pytestmark = pytest.mark.asyncio

STATE_SECRET = "test-state-secret"
CRON_SECRET = "test-cron-secret"


def header_user(request: Request) -> str | None:
    """Tests identify the signed-in user with a header."""
    return request.headers.get("X-User-Id")


def make_sync(database_url: str, **kwargs) -> SocialSync:
    options = dict(
        adapters=[
            TwitterAdapter(
                client_id="tw-client-id",
                client_secret="tw-client-secret",
                redirect_uri="http://test/auth/twitter/callback",
            ),
            YouTubeAdapter(
                client_id="yt-client-id",
                client_secret="yt-client-secret",
                redirect_uri="http://test/auth/youtube/callback",
            ),
        ],
        state_secret=STATE_SECRET,
        cookie=CookieConfig(secure=False),
        user_resolver=header_user,
        cron_secret=CRON_SECRET,
    )
    options.update(kwargs)
    return SocialSync(database_url=database_url, **options)


@pytest.fixture
def database_url(tmp_path) -> str:
    """A fresh SQLite file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'socialsync.db'}"


@pytest_asyncio.fixture
async def sync(database_url: str):
    instance = make_sync(database_url)
    await instance.migrate()
    yield instance
    await instance.dispose()


@pytest_asyncio.fixture
async def client(sync: SocialSync):
    app = FastAPI()
    app.include_router(sync.fastapi_router())

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


# ---------------------------------------------------------------------------
# Provider doubles
# ---------------------------------------------------------------------------


def make_metrics(
    *,
    followers: int = 1200,
    following: int = 80,
    username: str = "sync_tester",
    captured_at: datetime | None = None,
) -> SocialMetrics:
    now = utc_now()
    return SocialMetrics(
        account_info=AccountInfo(
            username=username,
            display_name="Sync Tester",
            followers=followers,
            following=following,
            profile_image_url="https://pbs.example.com/avatar.jpg",
        ),
        posts=[
            PostMetrics(
                id="1001",
                text="first",
                created_at=now - timedelta(days=1),
                metrics={"impressions": 500, "likes": 20, "retweets": 4, "replies": 6, "quotes": 0},
            ),
            PostMetrics(
                id="1002",
                text="second",
                created_at=now - timedelta(days=2),
                metrics={"impressions": 300, "likes": 10, "retweets": 2, "replies": 2, "quotes": 1},
            ),
        ],
        period=MetricsPeriod(start=now - timedelta(days=7), end=now),
        captured_at=captured_at,
        raw={"user": {"id": "tw-42", "public_metrics": {"tweet_count": 345}}},
    )


def make_tokens(
    access_token: str = "new-access-token",
    refresh_token: str | None = "new-refresh-token",
    expires_in: timedelta = timedelta(hours=2),
) -> SocialTokens:
    return SocialTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=utc_now() + expires_in,
        scopes="tweet.read users.read offline.access",
    )


@pytest.fixture
def twitter_api():
    """Patch the Twitter adapter's provider calls with AsyncMocks."""
    mocks = SimpleNamespace(
        exchange_code=AsyncMock(return_value=make_tokens("exchanged-access", "exchanged-refresh")),
        refresh_tokens=AsyncMock(return_value=make_tokens()),
        fetch_profile=AsyncMock(return_value=PlatformProfile(
            platform_user_id="tw-42",
            username="sync_tester",
            display_name="Sync Tester",
            profile_image_url="https://pbs.example.com/avatar.jpg",
        )),
        get_metrics=AsyncMock(return_value=make_metrics()),
    )
    with patch.multiple(TwitterAdapter, **vars(mocks)):
        yield mocks


async def link_account(
    sync: SocialSync,
    user_id: str,
    platform: str = "twitter",
    *,
    access_token: str = "stored-access-token",
    refresh_token: str | None = "stored-refresh-token",
    expires_at: datetime | None = None,
) -> LinkedAccount:
    """Store a linked account directly, as a completed callback would."""
    if expires_at is None:
        expires_at = utc_now() + timedelta(hours=1)
    async with sync.get_session() as session:
        account, _ = await account_repo.upsert_account(
            session,
            user_id=user_id,
            platform=platform,
            tokens=SocialTokens(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
                scopes="tweet.read",
            ),
            platform_user_id="tw-42",
            platform_username="sync_tester",
            metadata={"name": "Sync Tester"},
        )
    return account


async def get_account(sync: SocialSync, user_id: str, platform: str = "twitter") -> LinkedAccount | None:
    async with sync.get_session() as session:
        return await account_repo.get_account(session, user_id, platform)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_cookie_headers(response: httpx.Response) -> dict[str, str]:
    """Map cookie name -> raw Set-Cookie header."""
    headers = {}
    for header in response.headers.get_list("set-cookie"):
        headers[header.split("=", 1)[0]] = header
    return headers


def cookie_header(response: httpx.Response) -> str:
    """Cookie request header echoing every cookie the response set."""
    jar = SimpleCookie()
    for header in response.headers.get_list("set-cookie"):
        jar.load(header)
    return "; ".join(f"{name}={morsel.value}" for name, morsel in jar.items())
