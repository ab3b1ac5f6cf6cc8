"""Platform adapter base class — the capability contract every social provider implements."""

from __future__ import annotations

import abc
import contextlib
import logging
import urllib.parse
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from socialsync.core.errors import ProviderRejected, ProviderUnavailable
from socialsync.core.oauth_sessions import compose_state
from socialsync.core.pkce import generate_login_id, generate_pkce, generate_state
from socialsync.core.schemas import (
    AccountInfo,
    MetricsPeriod,
    SocialMetrics,
    SocialTokens,
)
from socialsync.models.metrics_snapshot import MetricsSnapshot
from socialsync.repositories import linked_account as account_repo
from socialsync.repositories import metrics_snapshot as snapshot_repo
from socialsync.utils import ensure_aware, utc_now

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from socialsync.models.linked_account import LinkedAccount

logger = logging.getLogger("socialsync.providers")


@dataclass(frozen=True, slots=True)
class AuthRequest:
    """Everything login initiation needs: where to send the browser and what to remember."""

    url: str
    code_verifier: str
    state: str
    login_id: str


@dataclass(frozen=True, slots=True)
class PlatformProfile:
    """Normalized identity of the account on the provider side."""

    platform_user_id: str
    username: str
    display_name: str | None = None
    profile_image_url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_metadata(self) -> dict[str, Any]:
        metadata = {
            "name": self.display_name or self.username,
            "profile_image_url": self.profile_image_url,
        }
        metadata.update(self.extra)
        return metadata


@dataclass(frozen=True)
class PlatformAdapter(abc.ABC):
    """Abstract base for all platform adapters.

    Subclasses must implement:
        name            — platform identifier used in routes and storage ("twitter")
        authorize_url   — provider's authorization endpoint
        token_url       — provider's token endpoint
        exchange_code() / refresh_tokens() — token endpoint calls
        fetch_profile() — who the linked account is
        get_metrics()   — live metrics in the normalized shape

    Network failures, timeouts and 5xx answers surface as ``ProviderUnavailable``;
    4xx answers as ``ProviderRejected``.
    """

    client_id: str
    client_secret: str
    redirect_uri: str
    extra_scopes: tuple[str, ...] = ()
    timeout: float = 10.0

    REQUIRED_SCOPES: ClassVar[tuple[str, ...]] = ()
    METRICS_PERIOD_DAYS: ClassVar[int] = 30
    # Per-post metric keys used for the snapshot aggregates.
    LIKE_KEY: ClassVar[str] = "likes"
    COMMENT_KEY: ClassVar[str] = "comments"
    VIEW_KEY: ClassVar[str] = "views"
    ENGAGEMENT_KEYS: ClassVar[tuple[str, ...]] = ("likes", "comments")

    @property
    @abc.abstractmethod
    def name(self) -> str: ...

    @property
    @abc.abstractmethod
    def authorize_url(self) -> str: ...

    @property
    @abc.abstractmethod
    def token_url(self) -> str: ...

    @property
    def scopes(self) -> tuple[str, ...]:
        """Combined required + extra scopes (deduplicated, order-preserving)."""
        return tuple(dict.fromkeys(self.REQUIRED_SCOPES + self.extra_scopes))

    # -- Authorization ---------------------------------------------------

    def authorization_params(self, *, state: str, code_challenge: str) -> dict[str, str]:
        """Query parameters for the authorize redirect. Override to add provider extras."""
        return {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }

    def prepare_auth_request(self) -> AuthRequest:
        """Fresh PKCE pair and state; the state embeds a login id for server-side correlation."""
        pkce = generate_pkce()
        login_id = generate_login_id()
        state = compose_state(generate_state(), login_id)
        params = self.authorization_params(state=state, code_challenge=pkce.code_challenge)
        url = f"{self.authorize_url}?{urllib.parse.urlencode(params)}"
        return AuthRequest(url=url, code_verifier=pkce.code_verifier, state=state, login_id=login_id)

    @abc.abstractmethod
    async def exchange_code(self, *, code: str, code_verifier: str) -> SocialTokens:
        """Exchange an authorization code (plus the PKCE verifier bound to it) for tokens."""
        ...

    @abc.abstractmethod
    async def refresh_tokens(self, refresh_token: str) -> SocialTokens:
        """Trade a refresh token for a new access token.

        ``refresh_token`` on the result is None when the provider did not rotate it.
        """
        ...

    @abc.abstractmethod
    async def fetch_profile(self, tokens: SocialTokens) -> PlatformProfile: ...

    @abc.abstractmethod
    async def get_metrics(self, tokens: SocialTokens, user_id: str | None = None) -> SocialMetrics:
        """Fetch live metrics. Callers are expected to have validated ``tokens`` first."""
        ...

    def is_token_expired(
        self,
        expires_at: datetime | None,
        *,
        now: datetime | None = None,
        skew_seconds: int = 0,
    ) -> bool:
        """True once ``now + skew`` reaches ``expires_at``. No expiry means never expires."""
        if expires_at is None:
            return False
        now = now or utc_now()
        return now + timedelta(seconds=skew_seconds) >= ensure_aware(expires_at)

    # -- HTTP helpers ----------------------------------------------------

    @contextlib.contextmanager
    def provider_errors(self, action: str) -> Iterator[None]:
        """Translate transport-level httpx failures into ``ProviderUnavailable``."""
        try:
            yield
        except httpx.TimeoutException as exc:
            raise ProviderUnavailable(
                f"{self.name} timed out during {action}", platform=self.name,
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderUnavailable(
                f"{self.name} unreachable during {action}: {exc.__class__.__name__}",
                platform=self.name,
            ) from exc

    def read_json(self, response: httpx.Response, action: str) -> Any:
        """Decode a provider response, mapping 5xx and 4xx onto the error taxonomy."""
        status = response.status_code
        if status >= 500:
            raise ProviderUnavailable(
                f"{self.name} returned {status} during {action}",
                platform=self.name, upstream_status=status,
            )
        if status >= 400:
            raise ProviderRejected(
                f"{self.name} rejected {action} ({status})",
                platform=self.name, upstream_status=status,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderUnavailable(
                f"{self.name} returned a malformed response during {action}",
                platform=self.name,
            ) from exc

    def parse_token_response(self, data: dict[str, Any], action: str) -> SocialTokens:
        access_token = data.get("access_token")
        if not access_token:
            raise ProviderRejected(
                f"No access token in {self.name} response to {action}", platform=self.name,
            )
        expires_in = data.get("expires_in")
        return SocialTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_at=utc_now() + timedelta(seconds=int(expires_in)) if expires_in else None,
            scopes=data.get("scope"),
        )

    def metrics_period(self) -> MetricsPeriod:
        end = utc_now()
        return MetricsPeriod(start=end - timedelta(days=self.METRICS_PERIOD_DAYS), end=end)

    # -- Cache ------------------------------------------------------------

    def total_posts(self, metrics: SocialMetrics) -> int:
        """Lifetime post count when the provider reports one; else the posts fetched."""
        return len(metrics.posts)

    def snapshot_fields(self, metrics: SocialMetrics) -> dict[str, Any]:
        """Derived aggregates stored alongside each snapshot."""
        posts = metrics.posts
        count = len(posts)
        followers = metrics.account_info.followers

        def total(key: str) -> float:
            return float(sum(p.metrics.get(key) or 0 for p in posts))

        interactions = sum(total(key) for key in self.ENGAGEMENT_KEYS)
        engagement_rate = 0.0
        if count and followers:
            engagement_rate = round(interactions / count / followers * 100, 4)
        return {
            "followers": followers,
            "following": metrics.account_info.following,
            "engagement_rate": engagement_rate,
            "total_posts": self.total_posts(metrics),
            "total_views": int(total(self.VIEW_KEY)),
            "avg_likes": round(total(self.LIKE_KEY) / count, 2) if count else 0.0,
            "avg_comments": round(total(self.COMMENT_KEY) / count, 2) if count else 0.0,
        }

    def profile_metadata(self, metrics: SocialMetrics) -> dict[str, Any]:
        """Denormalized profile fields merged into the account after a live fetch."""
        info = metrics.account_info
        return {
            "name": info.display_name,
            "profile_image_url": info.profile_image_url,
            "followers_count": info.followers,
        }

    def metrics_from_snapshot(self, account: LinkedAccount, snapshot: MetricsSnapshot) -> SocialMetrics:
        """Rebuild the normalized shape from a stored snapshot.

        Snapshot columns win over the stored payload for the headline counts.
        """
        metadata = account.account_metadata or {}
        username = account.platform_username or account.platform_user_id or ""
        info = AccountInfo(
            username=username,
            display_name=metadata.get("name") or username,
            followers=snapshot.followers,
            following=snapshot.following,
            profile_image_url=metadata.get("profile_image_url"),
        )
        if snapshot.raw_data:
            stored = SocialMetrics.model_validate(snapshot.raw_data)
            info = stored.account_info.model_copy(
                update={"followers": snapshot.followers, "following": snapshot.following},
            )
            return stored.model_copy(update={"account_info": info, "captured_at": snapshot.captured_at})
        return SocialMetrics(
            account_info=info,
            posts=[],
            period=self.metrics_period(),
            captured_at=snapshot.captured_at,
        )

    async def get_metrics_from_database(
        self,
        session: AsyncSession,
        account: LinkedAccount,
        *,
        max_age: timedelta,
        now: datetime | None = None,
    ) -> SocialMetrics | None:
        """Latest snapshot no older than ``max_age``, or None."""
        cutoff = (now or utc_now()) - max_age
        snapshot = await snapshot_repo.get_latest_snapshot(session, account.id, captured_after=cutoff)
        if snapshot is None:
            return None
        return self.metrics_from_snapshot(account, snapshot)

    async def store_metrics_in_database(
        self,
        session: AsyncSession,
        account: LinkedAccount,
        metrics: SocialMetrics,
    ) -> MetricsSnapshot:
        """Append a snapshot and refresh the account's denormalized profile fields."""
        captured_at = metrics.captured_at or utc_now()
        snapshot = MetricsSnapshot(
            account_id=account.id,
            platform=self.name,
            raw_data=metrics.model_dump(mode="json", exclude={"source", "captured_at"}),
            captured_at=captured_at,
            **self.snapshot_fields(metrics),
        )
        snapshot = await snapshot_repo.create_snapshot(session, snapshot)
        await account_repo.update_metadata(
            session, account, self.profile_metadata(metrics), refreshed_at=captured_at,
        )
        logger.debug("Stored %s metrics snapshot %s", self.name, snapshot.id)
        return snapshot
