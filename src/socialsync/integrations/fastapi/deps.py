"""FastAPI dependencies — resolve the signed-in application user for a request.

SocialSync does not authenticate users itself. The host application supplies
a resolver that maps a request to its user id (or None), typically reading
whatever its own auth middleware left on ``request.state``.
"""

import inspect
from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request

from socialsync.core.errors import Unauthenticated

UserResolver = Callable[[Request], "str | None | Awaitable[str | None]"]


def default_user_resolver(request: Request) -> str | None:
    """Read ``request.state.user_id`` as set by upstream auth middleware."""
    user_id = getattr(request.state, "user_id", None)
    return str(user_id) if user_id is not None else None


def create_optional_user_dep(resolver: UserResolver):
    """Factory: dependency yielding the current user id, or None when signed out."""

    async def optional_user(request: Request) -> str | None:
        user_id = resolver(request)
        if inspect.isawaitable(user_id):
            user_id = await user_id
        return str(user_id) if user_id else None

    return optional_user


def create_current_user_dep(resolver: UserResolver):
    """Factory: dependency yielding the current user id; 401 when signed out."""
    optional_user = create_optional_user_dep(resolver)

    async def current_user(request: Request) -> str:
        user_id = await optional_user(request)
        if user_id is None:
            err = Unauthenticated("Authentication required")
            raise HTTPException(status_code=err.status_code, detail=err.to_detail())
        return user_id

    return current_user
