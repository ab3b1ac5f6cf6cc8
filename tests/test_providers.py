"""Tests for platform adapters with mocked HTTP calls."""

import urllib.parse
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from conftest import make_metrics
from socialsync.core.errors import ProviderRejected, ProviderUnavailable
from socialsync.core.schemas import SocialTokens
from socialsync.providers.base import PlatformProfile
from socialsync.providers.twitter import TwitterAdapter
from socialsync.providers.youtube import YouTubeAdapter
from socialsync.utils import utc_now


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_response(json_data: dict, status_code: int = 200) -> MagicMock:
    """Create a mock httpx.Response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data
    return resp


def _mock_client(**methods) -> AsyncMock:
    client = AsyncMock()
    for name, value in methods.items():
        if isinstance(value, list) or isinstance(value, BaseException):
            getattr(client, name).side_effect = value
        else:
            getattr(client, name).return_value = value
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


TOKENS = SocialTokens(access_token="access-123", refresh_token="refresh-123")


def _query(url: str) -> dict[str, str]:
    return dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(url).query))


# ---------------------------------------------------------------------------
# Twitter / X
# ---------------------------------------------------------------------------


class TestTwitterAdapter:
    def _adapter(self, **kwargs) -> TwitterAdapter:
        return TwitterAdapter(
            client_id="tw-client-id",
            client_secret="tw-client-secret",
            redirect_uri="http://localhost/auth/twitter/callback",
            **kwargs,
        )

    def test_auth_request(self):
        request = self._adapter().prepare_auth_request()
        assert request.url.startswith("https://twitter.com/i/oauth2/authorize?")
        params = _query(request.url)
        assert params["response_type"] == "code"
        assert params["client_id"] == "tw-client-id"
        assert params["redirect_uri"] == "http://localhost/auth/twitter/callback"
        assert params["scope"] == "tweet.read users.read offline.access"
        assert params["code_challenge_method"] == "S256"
        assert params["state"] == request.state
        assert request.state.endswith("." + request.login_id)

    def test_extra_scopes_deduplicated(self):
        adapter = self._adapter(extra_scopes=("like.read", "tweet.read"))
        assert adapter.scopes == ("tweet.read", "users.read", "offline.access", "like.read")

    async def test_exchange_code(self):
        client = _mock_client(post=_mock_response({
            "access_token": "tw-access",
            "refresh_token": "tw-refresh",
            "expires_in": 7200,
            "scope": "tweet.read users.read offline.access",
            "token_type": "bearer",
        }))

        with patch("socialsync.providers.twitter.httpx.AsyncClient", return_value=client):
            tokens = await self._adapter().exchange_code(code="auth-code", code_verifier="verifier-abc")

        assert tokens.access_token == "tw-access"
        assert tokens.refresh_token == "tw-refresh"
        assert tokens.expires_at - utc_now() > timedelta(seconds=7100)

        call = client.post.call_args
        assert call.args[0] == "https://api.twitter.com/2/oauth2/token"
        assert call.kwargs["auth"] == ("tw-client-id", "tw-client-secret")
        assert call.kwargs["data"]["code"] == "auth-code"
        assert call.kwargs["data"]["code_verifier"] == "verifier-abc"
        assert call.kwargs["data"]["grant_type"] == "authorization_code"

    async def test_refresh_without_rotation(self):
        client = _mock_client(post=_mock_response({"access_token": "tw-access-2", "expires_in": 7200}))

        with patch("socialsync.providers.twitter.httpx.AsyncClient", return_value=client):
            tokens = await self._adapter().refresh_tokens("tw-refresh")

        assert tokens.access_token == "tw-access-2"
        assert tokens.refresh_token is None
        data = client.post.call_args.kwargs["data"]
        assert data == {"grant_type": "refresh_token", "refresh_token": "tw-refresh", "client_id": "tw-client-id"}

    async def test_rejected_grant(self):
        client = _mock_client(post=_mock_response({"error": "invalid_grant"}, status_code=400))

        with patch("socialsync.providers.twitter.httpx.AsyncClient", return_value=client):
            with pytest.raises(ProviderRejected) as exc_info:
                await self._adapter().refresh_tokens("revoked")

        assert exc_info.value.extra["upstream_status"] == 400

    async def test_missing_access_token_rejected(self):
        client = _mock_client(post=_mock_response({"token_type": "bearer"}))

        with patch("socialsync.providers.twitter.httpx.AsyncClient", return_value=client):
            with pytest.raises(ProviderRejected):
                await self._adapter().exchange_code(code="c", code_verifier="v")

    async def test_server_error_is_unavailable(self):
        client = _mock_client(post=_mock_response({}, status_code=503))

        with patch("socialsync.providers.twitter.httpx.AsyncClient", return_value=client):
            with pytest.raises(ProviderUnavailable):
                await self._adapter().exchange_code(code="c", code_verifier="v")

    @pytest.mark.parametrize("error", [
        httpx.ConnectTimeout("timed out"),
        httpx.ReadTimeout("timed out"),
        httpx.ConnectError("connection refused"),
    ])
    async def test_transport_failure_is_unavailable(self, error):
        client = _mock_client(post=error)

        with patch("socialsync.providers.twitter.httpx.AsyncClient", return_value=client):
            with pytest.raises(ProviderUnavailable) as exc_info:
                await self._adapter().exchange_code(code="c", code_verifier="v")

        assert exc_info.value.extra["platform"] == "twitter"

    async def test_malformed_body_is_unavailable(self):
        response = _mock_response({})
        response.json.side_effect = ValueError("not json")
        client = _mock_client(get=response)

        with patch("socialsync.providers.twitter.httpx.AsyncClient", return_value=client):
            with pytest.raises(ProviderUnavailable):
                await self._adapter().fetch_profile(TOKENS)

    async def test_fetch_profile(self):
        client = _mock_client(get=_mock_response({"data": {
            "id": "2244994945",
            "username": "TwitterDev",
            "name": "Developers",
            "profile_image_url": "https://pbs.twimg.com/p.jpg",
            "public_metrics": {"followers_count": 513000},
        }}))

        with patch("socialsync.providers.twitter.httpx.AsyncClient", return_value=client):
            profile = await self._adapter().fetch_profile(TOKENS)

        assert profile == PlatformProfile(
            platform_user_id="2244994945",
            username="TwitterDev",
            display_name="Developers",
            profile_image_url="https://pbs.twimg.com/p.jpg",
            extra={"followers_count": 513000},
        )
        assert client.get.call_args.kwargs["headers"]["Authorization"] == "Bearer access-123"

    async def test_get_metrics(self):
        user = _mock_response({"data": {
            "id": "2244994945",
            "username": "TwitterDev",
            "name": "Developers",
            "public_metrics": {
                "followers_count": 1000, "following_count": 50, "tweet_count": 4000,
            },
        }})
        tweets = _mock_response({"data": [
            {
                "id": "1",
                "text": "hello",
                "created_at": "2024-05-01T12:00:00.000Z",
                "public_metrics": {
                    "impression_count": 900, "like_count": 30, "retweet_count": 5,
                    "reply_count": 3, "quote_count": 2,
                },
            },
            {"id": "2", "text": "again", "public_metrics": {"like_count": 10}},
        ]})
        client = _mock_client(get=[user, tweets])

        with patch("socialsync.providers.twitter.httpx.AsyncClient", return_value=client):
            metrics = await self._adapter().get_metrics(TOKENS)

        assert metrics.account_info.username == "TwitterDev"
        assert metrics.account_info.followers == 1000
        assert metrics.account_info.following == 50
        assert [p.id for p in metrics.posts] == ["1", "2"]
        assert metrics.posts[0].created_at == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        assert metrics.posts[0].metrics == {
            "impressions": 900, "retweets": 5, "replies": 3, "likes": 30, "quotes": 2,
        }
        assert metrics.posts[1].metrics["impressions"] == 0
        assert metrics.period.end - metrics.period.start == timedelta(days=7)
        assert metrics.source is None

        tweets_call = client.get.call_args_list[1]
        assert tweets_call.args[0] == "https://api.twitter.com/2/users/2244994945/tweets"
        assert tweets_call.kwargs["params"]["max_results"] == 10

        fields = self._adapter().snapshot_fields(metrics)
        assert fields["total_posts"] == 4000
        assert fields["total_views"] == 900

    async def test_expired_token_rejected_on_metrics(self):
        client = _mock_client(get=_mock_response({"title": "Unauthorized"}, status_code=401))

        with patch("socialsync.providers.twitter.httpx.AsyncClient", return_value=client):
            with pytest.raises(ProviderRejected):
                await self._adapter().get_metrics(TOKENS)


# ---------------------------------------------------------------------------
# YouTube
# ---------------------------------------------------------------------------


CHANNEL = {
    "id": "UC123",
    "snippet": {
        "title": "Sync Channel",
        "customUrl": "@syncchannel",
        "thumbnails": {"default": {"url": "https://yt3.example.com/c.jpg"}},
    },
    "statistics": {"subscriberCount": "2500", "videoCount": "42", "viewCount": "99000"},
    "contentDetails": {"relatedPlaylists": {"uploads": "UU123"}},
}


class TestYouTubeAdapter:
    def _adapter(self) -> YouTubeAdapter:
        return YouTubeAdapter(
            client_id="yt-client-id",
            client_secret="yt-client-secret",
            redirect_uri="http://localhost/auth/youtube/callback",
        )

    def test_auth_request_asks_for_offline_access(self):
        request = self._adapter().prepare_auth_request()
        assert request.url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        params = _query(request.url)
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"
        assert params["scope"] == "https://www.googleapis.com/auth/youtube.readonly"
        assert params["code_challenge_method"] == "S256"

    async def test_exchange_code_sends_credentials_in_body(self):
        client = _mock_client(post=_mock_response({
            "access_token": "ya29.yt", "refresh_token": "1//yt", "expires_in": 3599,
        }))

        with patch("socialsync.providers.youtube.httpx.AsyncClient", return_value=client):
            tokens = await self._adapter().exchange_code(code="yt-code", code_verifier="yt-verifier")

        assert tokens.refresh_token == "1//yt"
        data = client.post.call_args.kwargs["data"]
        assert data["client_id"] == "yt-client-id"
        assert data["client_secret"] == "yt-client-secret"
        assert data["code_verifier"] == "yt-verifier"
        assert "auth" not in client.post.call_args.kwargs

    async def test_fetch_profile_without_channel(self):
        client = _mock_client(get=_mock_response({"items": []}))

        with patch("socialsync.providers.youtube.httpx.AsyncClient", return_value=client):
            with pytest.raises(ProviderRejected) as exc_info:
                await self._adapter().fetch_profile(TOKENS)

        assert exc_info.value.code == "youtube_channel_not_found"

    async def test_get_metrics(self):
        playlist = _mock_response({"items": [
            {"contentDetails": {"videoId": "v1"}},
            {"contentDetails": {"videoId": "v2"}},
        ]})
        videos = _mock_response({"items": [
            {
                "id": "v1",
                "snippet": {"title": "First", "publishedAt": "2024-04-01T08:00:00Z"},
                "statistics": {"viewCount": "1000", "likeCount": "50", "commentCount": "10"},
            },
            # Likes hidden by the uploader
            {"id": "v2", "snippet": {"title": "Second"}, "statistics": {"viewCount": "500"}},
        ]})
        client = _mock_client(get=[_mock_response({"items": [CHANNEL]}), playlist, videos])

        adapter = self._adapter()
        with patch("socialsync.providers.youtube.httpx.AsyncClient", return_value=client):
            metrics = await adapter.get_metrics(TOKENS)

        assert client.get.call_count == 3
        assert client.get.call_args_list[2].kwargs["params"]["id"] == "v1,v2"
        assert metrics.account_info.username == "@syncchannel"
        assert metrics.account_info.followers == 2500
        assert metrics.posts[0].metrics == {"views": 1000, "likes": 50, "comments": 10}
        assert metrics.posts[1].metrics == {"views": 500, "likes": 0, "comments": 0}

        fields = adapter.snapshot_fields(metrics)
        assert fields["total_posts"] == 42
        assert fields["total_views"] == 1500
        assert fields["avg_likes"] == 25.0
        assert fields["avg_comments"] == 5.0
        assert adapter.profile_metadata(metrics)["subscribers_count"] == 2500

    async def test_get_metrics_without_uploads(self):
        channel = {**CHANNEL, "contentDetails": {}}
        client = _mock_client(get=[_mock_response({"items": [channel]})])

        with patch("socialsync.providers.youtube.httpx.AsyncClient", return_value=client):
            metrics = await self._adapter().get_metrics(TOKENS)

        assert metrics.posts == []
        assert client.get.call_count == 1


# ---------------------------------------------------------------------------
# Shared adapter behaviour
# ---------------------------------------------------------------------------


class TestAdapterHelpers:
    def _adapter(self) -> TwitterAdapter:
        return TwitterAdapter(client_id="id", client_secret="secret", redirect_uri="http://localhost/cb")

    def test_no_expiry_never_expires(self):
        assert self._adapter().is_token_expired(None) is False

    def test_expiry_boundary(self):
        now = utc_now()
        adapter = self._adapter()
        assert adapter.is_token_expired(now, now=now) is True
        assert adapter.is_token_expired(now + timedelta(seconds=1), now=now) is False
        assert adapter.is_token_expired(now - timedelta(seconds=1), now=now) is True

    def test_skew_expires_early(self):
        now = utc_now()
        expires_at = now + timedelta(seconds=60)
        adapter = self._adapter()
        assert adapter.is_token_expired(expires_at, now=now, skew_seconds=30) is False
        assert adapter.is_token_expired(expires_at, now=now, skew_seconds=300) is True

    def test_naive_expiry_treated_as_utc(self):
        now = utc_now()
        naive = (now - timedelta(minutes=1)).replace(tzinfo=None)
        assert self._adapter().is_token_expired(naive, now=now) is True

    def test_snapshot_fields(self):
        fields = self._adapter().snapshot_fields(make_metrics(followers=1000, following=10))
        # Interactions: (20+4+6+0) + (10+2+2+1) = 45 over 2 posts and 1000 followers
        assert fields["followers"] == 1000
        assert fields["following"] == 10
        assert fields["engagement_rate"] == 2.25
        assert fields["avg_likes"] == 15.0
        assert fields["avg_comments"] == 4.0
        assert fields["total_views"] == 800
        assert fields["total_posts"] == 345

    def test_snapshot_fields_without_posts(self):
        metrics = make_metrics().model_copy(update={"posts": [], "raw": None})
        fields = self._adapter().snapshot_fields(metrics)
        assert fields["engagement_rate"] == 0.0
        assert fields["avg_likes"] == 0.0
        assert fields["total_posts"] == 0
