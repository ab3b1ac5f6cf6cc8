"""SocialSync platform adapters."""

from socialsync.providers.base import AuthRequest, PlatformAdapter, PlatformProfile
from socialsync.providers.twitter import TwitterAdapter
from socialsync.providers.youtube import YouTubeAdapter

__all__ = [
    "AuthRequest",
    "PlatformAdapter",
    "PlatformProfile",
    "TwitterAdapter",
    "YouTubeAdapter",
]
