"""Error taxonomy for the OAuth flow, token lifecycle, and metrics reconciliation.

Framework-agnostic. The FastAPI integration turns any ``SocialError`` into a
JSON body ``{"detail": {"error": code, "message": message, ...}}``.
"""

from __future__ import annotations


class SocialError(Exception):
    """Base error with an error code and HTTP status."""

    default_code = "social_error"
    default_status = 500

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None, **extra):
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status
        self.extra = extra
        super().__init__(message)

    def to_detail(self) -> dict:
        detail = {"error": self.code, "message": self.message}
        if self.extra:
            detail.update(self.extra)
        return detail


class InvalidRequest(SocialError):
    """Missing code, state, or verifier — user-correctable."""

    default_code = "invalid_request"
    default_status = 400


class StateMismatch(SocialError):
    """Callback state does not match any live session (CSRF suspicion)."""

    default_code = "state_mismatch"
    default_status = 400


class Unauthenticated(SocialError):
    default_code = "unauthenticated"
    default_status = 401


class UnknownPlatform(SocialError):
    default_code = "unknown_platform"
    default_status = 404


class NoLinkedAccount(SocialError):
    default_code = "no_linked_account"
    default_status = 404


class NoCachedMetrics(SocialError):
    """Only raised for explicit cache-only reads."""

    default_code = "no_cached_metrics"
    default_status = 404


class TokenRefreshFailed(SocialError):
    """Refresh token absent or rejected; the user has to re-authenticate."""

    default_code = "token_refresh_failed"
    default_status = 409


class ProviderUnavailable(SocialError):
    """Network failure, timeout, or 5xx from the provider. Retryable."""

    default_code = "provider_unavailable"
    default_status = 502


class ProviderRejected(SocialError):
    """Provider answered with a 4xx."""

    default_code = "provider_rejected"
    default_status = 502


class TokenExchangeFailed(SocialError):
    default_code = "token_exchange_failed"
    default_status = 500


class StorageWriteFailed(SocialError):
    default_code = "storage_write_failed"
    default_status = 500
