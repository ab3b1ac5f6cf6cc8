"""SocialSync configuration — dataclasses for OAuth cookies and core settings."""

from dataclasses import dataclass, field
from typing import Literal

STATE_COOKIE_ALGORITHM = "HS256"


@dataclass(frozen=True, slots=True)
class CookieConfig:
    """Attributes for the short-lived OAuth cookies written at login initiation.

    Pass ``secure=False`` for plain-HTTP local development.
    """

    secure: bool = True
    httponly: bool = True
    samesite: Literal["lax", "strict", "none"] = "lax"
    path: str = "/"
    domain: str | None = None
    max_age: int = 600  # 10 minutes

    def state_cookie_name(self, platform: str) -> str:
        return f"{platform}_oauth_state"

    def verifier_cookie_name(self, platform: str) -> str:
        return f"{platform}_code_verifier"


@dataclass(frozen=True, slots=True)
class SocialSyncConfig:
    """Internal config built by the SocialSync constructor. Not user-facing."""

    database_url: str
    state_secret: str
    cookie: CookieConfig = field(default_factory=CookieConfig)
    session_ttl_seconds: int = 600  # 10 minutes
    purge_grace_seconds: int = 30
    purge_probability: float = 0.1
    token_expiry_skew_seconds: int = 0
    provider_timeout_seconds: float = 10.0
    metrics_max_age_days: int = 1
    metrics_period_days: int = 30
    cron_secret: str | None = None
    refresh_concurrency: int = 4
    accounts_redirect_url: str = "/accounts"

    def __post_init__(self) -> None:
        if self.session_ttl_seconds <= 0:
            raise ValueError("session_ttl_seconds must be positive")
        if self.purge_grace_seconds < 0:
            raise ValueError("purge_grace_seconds must not be negative")
        if not 0.0 <= self.purge_probability <= 1.0:
            raise ValueError("purge_probability must be between 0 and 1")
        if self.token_expiry_skew_seconds < 0:
            raise ValueError("token_expiry_skew_seconds must not be negative")
        if self.provider_timeout_seconds <= 0:
            raise ValueError("provider_timeout_seconds must be positive")
        if self.refresh_concurrency < 1:
            raise ValueError("refresh_concurrency must be at least 1")
        if not self.state_secret:
            raise ValueError("state_secret must not be empty")
