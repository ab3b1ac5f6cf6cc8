"""Twitter / X OAuth 2.0 adapter (API v2)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar

import httpx

from socialsync.core.schemas import AccountInfo, PostMetrics, SocialMetrics, SocialTokens
from socialsync.providers.base import PlatformAdapter, PlatformProfile

API_BASE = "https://api.twitter.com/2"
USER_FIELDS = "profile_image_url,public_metrics"
TWEET_FIELDS = "created_at,public_metrics"


@dataclass(frozen=True)
class TwitterAdapter(PlatformAdapter):
    """Twitter / X adapter.

    Confidential client: the token endpoint takes HTTP Basic client credentials.
    ``offline.access`` is required for a refresh token.
    """

    REQUIRED_SCOPES: ClassVar[tuple[str, ...]] = ("tweet.read", "users.read", "offline.access")
    METRICS_PERIOD_DAYS: ClassVar[int] = 7
    COMMENT_KEY: ClassVar[str] = "replies"
    VIEW_KEY: ClassVar[str] = "impressions"
    ENGAGEMENT_KEYS: ClassVar[tuple[str, ...]] = ("likes", "retweets", "replies", "quotes")
    max_tweets: int = 10

    @property
    def name(self) -> str:
        return "twitter"

    @property
    def authorize_url(self) -> str:
        return "https://twitter.com/i/oauth2/authorize"

    @property
    def token_url(self) -> str:
        return f"{API_BASE}/oauth2/token"

    async def _token_request(self, data: dict[str, str], action: str) -> SocialTokens:
        with self.provider_errors(action):
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.token_url,
                    data=data,
                    auth=(self.client_id, self.client_secret),
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        return self.parse_token_response(self.read_json(response, action), action)

    async def exchange_code(self, *, code: str, code_verifier: str) -> SocialTokens:
        return await self._token_request(
            {
                "code": code,
                "grant_type": "authorization_code",
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "code_verifier": code_verifier,
            },
            "code exchange",
        )

    async def refresh_tokens(self, refresh_token: str) -> SocialTokens:
        return await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
            },
            "token refresh",
        )

    async def _get(self, client: httpx.AsyncClient, path: str, tokens: SocialTokens, action: str, **params) -> Any:
        response = await client.get(
            f"{API_BASE}{path}",
            params=params,
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        return self.read_json(response, action)

    async def fetch_profile(self, tokens: SocialTokens) -> PlatformProfile:
        with self.provider_errors("profile fetch"):
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                payload = await self._get(
                    client, "/users/me", tokens, "profile fetch", **{"user.fields": USER_FIELDS},
                )
        user = payload.get("data") or {}
        public = user.get("public_metrics") or {}
        return PlatformProfile(
            platform_user_id=str(user.get("id", "")),
            username=user.get("username", ""),
            display_name=user.get("name"),
            profile_image_url=user.get("profile_image_url"),
            extra={"followers_count": public.get("followers_count", 0)},
        )

    async def get_metrics(self, tokens: SocialTokens, user_id: str | None = None) -> SocialMetrics:
        with self.provider_errors("metrics fetch"):
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                user_payload = await self._get(
                    client, "/users/me", tokens, "metrics fetch", **{"user.fields": USER_FIELDS},
                )
                user = user_payload.get("data") or {}
                tweets_payload = await self._get(
                    client,
                    f"/users/{user.get('id')}/tweets",
                    tokens,
                    "metrics fetch",
                    **{"tweet.fields": TWEET_FIELDS, "max_results": self.max_tweets},
                )

        public = user.get("public_metrics") or {}
        account_info = AccountInfo(
            username=user.get("username", ""),
            display_name=user.get("name") or user.get("username", ""),
            followers=public.get("followers_count", 0),
            following=public.get("following_count", 0),
            profile_image_url=user.get("profile_image_url"),
        )
        posts = [self._post(tweet) for tweet in tweets_payload.get("data") or []]
        return SocialMetrics(
            account_info=account_info,
            posts=posts,
            period=self.metrics_period(),
            raw={"user": user, "tweets": tweets_payload},
        )

    @staticmethod
    def _post(tweet: dict[str, Any]) -> PostMetrics:
        public = tweet.get("public_metrics") or {}
        created_at = tweet.get("created_at")
        return PostMetrics(
            id=str(tweet["id"]),
            text=tweet.get("text"),
            created_at=datetime.fromisoformat(created_at.replace("Z", "+00:00")) if created_at else None,
            metrics={
                "impressions": public.get("impression_count", 0),
                "retweets": public.get("retweet_count", 0),
                "replies": public.get("reply_count", 0),
                "likes": public.get("like_count", 0),
                "quotes": public.get("quote_count", 0),
            },
        )

    def total_posts(self, metrics: SocialMetrics) -> int:
        user = (metrics.raw or {}).get("user") or {}
        tweet_count = (user.get("public_metrics") or {}).get("tweet_count")
        return int(tweet_count) if tweet_count is not None else len(metrics.posts)
