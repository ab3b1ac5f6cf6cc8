"""Best-effort execution — attempt an operation, log a failure, never propagate it."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Attempt(Generic[T]):
    """Outcome of a best-effort operation."""

    ok: bool
    value: T | None = None
    error: BaseException | None = None


async def attempt(
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    logger: logging.Logger,
    description: str,
    **kwargs: Any,
) -> Attempt[T]:
    """Await ``operation(*args, **kwargs)``; on ``Exception`` log it and report failure.

    Cancellation (``BaseException`` subclasses) still propagates.
    """
    try:
        value = await operation(*args, **kwargs)
    except Exception as exc:
        logger.warning("Best-effort %s failed: %s", description, exc, exc_info=True)
        return Attempt(ok=False, error=exc)
    return Attempt(ok=True, value=value)
