"""SocialSync — link social-media accounts over OAuth 2.0 + PKCE and keep their metrics fresh."""

__version__ = "0.1.0"

from socialsync.config import CookieConfig
from socialsync.core.errors import (
    InvalidRequest,
    NoCachedMetrics,
    NoLinkedAccount,
    ProviderRejected,
    ProviderUnavailable,
    SocialError,
    StateMismatch,
    StorageWriteFailed,
    TokenExchangeFailed,
    TokenRefreshFailed,
    Unauthenticated,
    UnknownPlatform,
)
from socialsync.core.metrics import MetricSource
from socialsync.core.schemas import AccountRefreshResult, SocialMetrics, SocialTokens
from socialsync.events import (
    AccountLinked,
    AccountReconnected,
    MetricsRefreshed,
    MetricsWriteBackFailed,
    OAuthCallbackRejected,
    TokenRefreshed,
    TokenRefreshFailure,
)
from socialsync.models.linked_account import LinkedAccount
from socialsync.models.metrics_snapshot import MetricsSnapshot
from socialsync.providers.base import PlatformAdapter, PlatformProfile
from socialsync.providers.twitter import TwitterAdapter
from socialsync.providers.youtube import YouTubeAdapter
from socialsync.socialsync import SocialSync

__all__ = [
    "AccountLinked",
    "AccountReconnected",
    "AccountRefreshResult",
    "CookieConfig",
    "InvalidRequest",
    "LinkedAccount",
    "MetricSource",
    "MetricsRefreshed",
    "MetricsSnapshot",
    "MetricsWriteBackFailed",
    "NoCachedMetrics",
    "NoLinkedAccount",
    "OAuthCallbackRejected",
    "PlatformAdapter",
    "PlatformProfile",
    "ProviderRejected",
    "ProviderUnavailable",
    "SocialError",
    "SocialMetrics",
    "SocialSync",
    "SocialTokens",
    "StateMismatch",
    "StorageWriteFailed",
    "TokenExchangeFailed",
    "TokenRefreshFailed",
    "TokenRefreshFailure",
    "TokenRefreshed",
    "TwitterAdapter",
    "Unauthenticated",
    "UnknownPlatform",
    "YouTubeAdapter",
]
