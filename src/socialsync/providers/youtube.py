"""YouTube adapter — Google OAuth 2.0 with offline access, YouTube Data API v3."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar

import httpx

from socialsync.core.errors import ProviderRejected
from socialsync.core.schemas import AccountInfo, PostMetrics, SocialMetrics, SocialTokens
from socialsync.providers.base import PlatformAdapter, PlatformProfile

API_BASE = "https://www.googleapis.com/youtube/v3"


def _int(value: Any) -> int:
    """YouTube statistics arrive as strings and may be hidden (absent)."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class YouTubeAdapter(PlatformAdapter):
    """YouTube adapter.

    Requests ``access_type=offline`` and ``prompt=consent`` so Google issues a
    refresh token on every authorization, reconnects included.
    """

    REQUIRED_SCOPES: ClassVar[tuple[str, ...]] = ("https://www.googleapis.com/auth/youtube.readonly",)
    max_videos: int = 10

    @property
    def name(self) -> str:
        return "youtube"

    @property
    def authorize_url(self) -> str:
        return "https://accounts.google.com/o/oauth2/v2/auth"

    @property
    def token_url(self) -> str:
        return "https://oauth2.googleapis.com/token"

    def authorization_params(self, *, state: str, code_challenge: str) -> dict[str, str]:
        params = super().authorization_params(state=state, code_challenge=code_challenge)
        params["access_type"] = "offline"
        params["prompt"] = "consent"
        return params

    async def _token_request(self, data: dict[str, str], action: str) -> SocialTokens:
        data = {**data, "client_id": self.client_id, "client_secret": self.client_secret}
        with self.provider_errors(action):
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.token_url, data=data)
        return self.parse_token_response(self.read_json(response, action), action)

    async def exchange_code(self, *, code: str, code_verifier: str) -> SocialTokens:
        return await self._token_request(
            {
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
                "code_verifier": code_verifier,
            },
            "code exchange",
        )

    async def refresh_tokens(self, refresh_token: str) -> SocialTokens:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "token refresh",
        )

    async def _get(self, client: httpx.AsyncClient, path: str, tokens: SocialTokens, action: str, **params) -> Any:
        response = await client.get(
            f"{API_BASE}{path}",
            params=params,
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        return self.read_json(response, action)

    async def _channel(self, client: httpx.AsyncClient, tokens: SocialTokens, action: str) -> dict[str, Any]:
        payload = await self._get(
            client, "/channels", tokens, action, part="snippet,statistics,contentDetails", mine="true",
        )
        items = payload.get("items") or []
        if not items:
            raise ProviderRejected(
                "No YouTube channel found for this account",
                code="youtube_channel_not_found", platform=self.name,
            )
        return items[0]

    async def fetch_profile(self, tokens: SocialTokens) -> PlatformProfile:
        with self.provider_errors("profile fetch"):
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                channel = await self._channel(client, tokens, "profile fetch")
        snippet = channel.get("snippet") or {}
        statistics = channel.get("statistics") or {}
        return PlatformProfile(
            platform_user_id=channel["id"],
            username=snippet.get("customUrl") or channel["id"],
            display_name=snippet.get("title"),
            profile_image_url=((snippet.get("thumbnails") or {}).get("default") or {}).get("url"),
            extra={"subscribers_count": _int(statistics.get("subscriberCount"))},
        )

    async def get_metrics(self, tokens: SocialTokens, user_id: str | None = None) -> SocialMetrics:
        with self.provider_errors("metrics fetch"):
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                channel = await self._channel(client, tokens, "metrics fetch")
                uploads = (
                    ((channel.get("contentDetails") or {}).get("relatedPlaylists") or {}).get("uploads")
                )
                videos: list[dict[str, Any]] = []
                if uploads:
                    playlist = await self._get(
                        client, "/playlistItems", tokens, "metrics fetch",
                        part="snippet,contentDetails", playlistId=uploads, maxResults=self.max_videos,
                    )
                    video_ids = [
                        item["contentDetails"]["videoId"] for item in playlist.get("items") or []
                    ]
                    if video_ids:
                        stats = await self._get(
                            client, "/videos", tokens, "metrics fetch",
                            part="statistics,snippet", id=",".join(video_ids),
                        )
                        videos = stats.get("items") or []

        snippet = channel.get("snippet") or {}
        statistics = channel.get("statistics") or {}
        account_info = AccountInfo(
            username=snippet.get("customUrl") or channel["id"],
            display_name=snippet.get("title") or channel["id"],
            followers=_int(statistics.get("subscriberCount")),
            following=0,
            profile_image_url=((snippet.get("thumbnails") or {}).get("default") or {}).get("url"),
        )
        return SocialMetrics(
            account_info=account_info,
            posts=[self._post(video) for video in videos],
            period=self.metrics_period(),
            raw={"channel": channel, "videos": videos},
        )

    @staticmethod
    def _post(video: dict[str, Any]) -> PostMetrics:
        snippet = video.get("snippet") or {}
        statistics = video.get("statistics") or {}
        published = snippet.get("publishedAt")
        return PostMetrics(
            id=video["id"],
            text=snippet.get("title"),
            image_url=((snippet.get("thumbnails") or {}).get("medium") or {}).get("url"),
            created_at=datetime.fromisoformat(published.replace("Z", "+00:00")) if published else None,
            metrics={
                "views": _int(statistics.get("viewCount")),
                "likes": _int(statistics.get("likeCount")),
                "comments": _int(statistics.get("commentCount")),
            },
        )

    def total_posts(self, metrics: SocialMetrics) -> int:
        channel = (metrics.raw or {}).get("channel") or {}
        video_count = (channel.get("statistics") or {}).get("videoCount")
        return _int(video_count) if video_count is not None else len(metrics.posts)

    def profile_metadata(self, metrics: SocialMetrics) -> dict[str, Any]:
        metadata = super().profile_metadata(metrics)
        metadata["subscribers_count"] = metrics.account_info.followers
        return metadata
