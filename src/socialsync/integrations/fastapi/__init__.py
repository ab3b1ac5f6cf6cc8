"""FastAPI integration for SocialSync."""

from socialsync.integrations.fastapi.deps import (
    create_current_user_dep,
    create_optional_user_dep,
    default_user_resolver,
)
from socialsync.integrations.fastapi.oauth_router import create_oauth_router
from socialsync.integrations.fastapi.router import create_cron_router, create_metrics_router

__all__ = [
    "create_cron_router",
    "create_current_user_dep",
    "create_metrics_router",
    "create_oauth_router",
    "create_optional_user_dep",
    "default_user_resolver",
]
