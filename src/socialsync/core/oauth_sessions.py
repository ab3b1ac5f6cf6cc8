"""OAuth session correlation — binds a callback's ``state`` to the verifier issued at login.

Two backends behind one interface, consulted in a fixed priority order:

1. ``CookieSessionChannel`` — a signed, short-lived cookie pair written on the
   login redirect and read back on the callback. Survives restarts but depends
   on the browser round-tripping cookies (``localhost`` vs ``127.0.0.1`` breaks it).
2. ``InMemorySessionBackend`` — a process-scoped map keyed by login id, used
   when cookies did not make it back.

The in-memory map lives for the lifetime of the process and is not shared
between workers or instances. A horizontally scaled deployment needs a shared
keyed store with TTL (e.g. Redis) implementing ``SessionBackend``.

Only the server-side map can tombstone a consumed session. If the process
restarts, a replayed cookie pair together with its state validates again
until the cookie's ``exp``, at most ``session_ttl_seconds`` later. A shared
backend that outlives the process closes that window.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import jwt
from starlette.responses import Response

from socialsync.config import STATE_COOKIE_ALGORITHM, CookieConfig, SocialSyncConfig

logger = logging.getLogger("socialsync.oauth")

_STATE_SEPARATOR = "."


def compose_state(nonce: str, login_id: str) -> str:
    """State sent to the provider: ``"{nonce}.{login_id}"``."""
    return f"{nonce}{_STATE_SEPARATOR}{login_id}"


def login_id_from_state(state: str) -> str | None:
    """Recover the login id embedded in a state token, or None if malformed."""
    nonce, sep, login_id = state.rpartition(_STATE_SEPARATOR)
    if not sep or not nonce or not login_id:
        return None
    return login_id


@dataclass(frozen=True, slots=True)
class OAuthSession:
    """In-flight authorization request. ``created_at`` is epoch seconds."""

    state: str
    code_verifier: str
    is_reconnect: bool
    created_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.created_at >= ttl_seconds


@runtime_checkable
class SessionBackend(Protocol):
    """Storage channel for OAuth sessions."""

    def save(self, session_id: str, session: OAuthSession) -> None: ...

    def load(self, session_id: str) -> OAuthSession | None:
        """Return the live session, or None if missing or expired."""
        ...

    def discard(self, session_id: str) -> None: ...

    def was_consumed(self, session_id: str) -> bool:
        """True if the session was already used or rejected."""
        ...

    def take(self, session_id: str) -> tuple[bool, OAuthSession | None]:
        """Load and mark consumed in one step. Returns ``(already_consumed, session)``."""
        ...


class InMemorySessionBackend:
    """Thread-safe in-process session map with TTL and single-use tombstones.

    Expired entries are never returned: ``load`` checks and evicts under the
    lock. The full sweep runs opportunistically on writes, either by chance
    (``purge_probability``) or when ``purge_grace_seconds`` have passed since
    the previous sweep.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 600,
        purge_grace_seconds: float = 30,
        purge_probability: float = 0.1,
        time_func: Callable[[], float] | None = None,
        random_func: Callable[[], float] | None = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._grace = purge_grace_seconds
        self._probability = purge_probability
        self._time_func = time_func or time.time
        self._random_func = random_func or random.random
        self._sessions: dict[str, OAuthSession] = {}
        self._consumed: dict[str, float] = {}
        self._last_purge = self._time_func()
        self._lock = threading.Lock()

    def save(self, session_id: str, session: OAuthSession) -> None:
        with self._lock:
            self._sessions[session_id] = session
            self._consumed.pop(session_id, None)
        now = self._time_func()
        if self._random_func() < self._probability or now - self._last_purge >= self._grace:
            self.purge_expired()

    def load(self, session_id: str) -> OAuthSession | None:
        now = self._time_func()
        with self._lock:
            if session_id in self._consumed:
                return None
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if session.is_expired(now, self._ttl):
                del self._sessions[session_id]
                return None
            return session

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
            self._consumed[session_id] = self._time_func() + self._ttl

    def was_consumed(self, session_id: str) -> bool:
        now = self._time_func()
        with self._lock:
            expires = self._consumed.get(session_id)
            if expires is None:
                return False
            if expires <= now:
                del self._consumed[session_id]
                return False
            return True

    def take(self, session_id: str) -> tuple[bool, OAuthSession | None]:
        now = self._time_func()
        with self._lock:
            expires = self._consumed.get(session_id)
            if expires is not None and expires > now:
                return True, None
            self._consumed[session_id] = now + self._ttl
            session = self._sessions.pop(session_id, None)
        if session is None or session.is_expired(now, self._ttl):
            return False, None
        return False, session

    def purge_expired(self) -> int:
        """Drop expired sessions and stale tombstones. Returns sessions removed."""
        now = self._time_func()
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if s.is_expired(now, self._ttl)]
            for sid in stale:
                del self._sessions[sid]
            for sid in [sid for sid, exp in self._consumed.items() if exp <= now]:
                del self._consumed[sid]
            self._last_purge = now
        if stale:
            logger.debug("Purged %d expired OAuth sessions", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class CookieSessionChannel:
    """Request-scoped cookie backend for a single platform.

    The state cookie is an HS256 JWT carrying the login id, state, reconnect
    flag and expiry; the verifier cookie holds the raw code verifier. Writes
    are queued and applied to the outgoing response with ``apply``.
    """

    def __init__(
        self,
        *,
        platform: str,
        cookie: CookieConfig,
        secret: str,
        ttl_seconds: float,
        request_cookies: Mapping[str, str],
        time_func: Callable[[], float] | None = None,
    ) -> None:
        self._platform = platform
        self._cookie = cookie
        self._secret = secret
        self._ttl = ttl_seconds
        self._request_cookies = request_cookies
        self._time_func = time_func or time.time
        self._pending: list[Callable[[Response], None]] = []

    @property
    def state_cookie(self) -> str:
        return self._cookie.state_cookie_name(self._platform)

    @property
    def verifier_cookie(self) -> str:
        return self._cookie.verifier_cookie_name(self._platform)

    def save(self, session_id: str, session: OAuthSession) -> None:
        payload = {
            "typ": "oauth_state",
            "prv": self._platform,
            "sid": session_id,
            "state": session.state,
            "rc": session.is_reconnect,
            "iat": int(session.created_at),
            "exp": int(session.created_at + self._ttl),
        }
        token = jwt.encode(payload, self._secret, algorithm=STATE_COOKIE_ALGORITHM)
        self._pending.append(lambda r: self._set(r, self.state_cookie, token))
        self._pending.append(lambda r: self._set(r, self.verifier_cookie, session.code_verifier))

    def load(self, session_id: str) -> OAuthSession | None:
        token = self._request_cookies.get(self.state_cookie)
        if not token:
            return None
        # Expiry is checked against the injected clock below, not by PyJWT.
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[STATE_COOKIE_ALGORITHM],
                options={"require": ["exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError:
            logger.warning("Ignoring invalid OAuth state cookie for %s", self._platform)
            return None

        if payload.get("typ") != "oauth_state" or payload.get("prv") != self._platform:
            return None
        if payload.get("sid") != session_id:
            return None
        if payload["exp"] <= self._time_func():
            logger.info("OAuth state cookie for %s has expired", self._platform)
            return None

        session = OAuthSession(
            state=payload.get("state", ""),
            code_verifier=self._request_cookies.get(self.verifier_cookie, ""),
            is_reconnect=bool(payload.get("rc", False)),
            created_at=float(payload["iat"]),
        )
        if session.is_expired(self._time_func(), self._ttl):
            return None
        return session

    def discard(self, session_id: str) -> None:
        self._pending.append(lambda r: self._delete(r, self.state_cookie))
        self._pending.append(lambda r: self._delete(r, self.verifier_cookie))

    def was_consumed(self, session_id: str) -> bool:
        return False

    def take(self, session_id: str) -> tuple[bool, OAuthSession | None]:
        # Cookies are cleared by ``discard``; only a server-side channel can tombstone.
        return False, self.load(session_id)

    def apply(self, response: Response) -> None:
        """Write queued cookie mutations onto ``response``."""
        for mutation in self._pending:
            mutation(response)
        self._pending.clear()

    def _set(self, response: Response, key: str, value: str) -> None:
        c = self._cookie
        response.set_cookie(
            key=key,
            value=value,
            max_age=c.max_age,
            secure=c.secure,
            httponly=c.httponly,
            samesite=c.samesite,
            path=c.path,
            domain=c.domain,
        )

    def _delete(self, response: Response, key: str) -> None:
        c = self._cookie
        response.delete_cookie(
            key=key, path=c.path, domain=c.domain,
            secure=c.secure, httponly=c.httponly, samesite=c.samesite,
        )


class BoundSessionStore:
    """Session store bound to one request: ``store`` / ``get`` / ``delete``.

    Channels are written together and read in priority order. A session that
    any channel reports as consumed is never returned.
    """

    def __init__(
        self,
        channels: list[SessionBackend],
        *,
        cookies: CookieSessionChannel,
        ttl_seconds: float,
        time_func: Callable[[], float],
    ) -> None:
        self._channels = channels
        self._cookies = cookies
        self._ttl = ttl_seconds
        self._time_func = time_func

    def store(self, session_id: str, state: str, code_verifier: str, is_reconnect: bool) -> OAuthSession:
        session = OAuthSession(
            state=state,
            code_verifier=code_verifier,
            is_reconnect=is_reconnect,
            created_at=self._time_func(),
        )
        for channel in self._channels:
            channel.save(session_id, session)
        return session

    def get(self, session_id: str) -> OAuthSession | None:
        """Consume the session: the first caller gets it, every later one gets None.

        All channels are taken before choosing, so a concurrent callback with
        the same state finds the server-side tombstone. The first live session
        with a verifier wins; a verifier-less hit is the last resort.
        """
        now = self._time_func()
        consumed = False
        live: list[OAuthSession] = []
        for channel in self._channels:
            already, session = channel.take(session_id)
            consumed = consumed or already
            if session is not None and not session.is_expired(now, self._ttl):
                live.append(session)

        if consumed:
            logger.warning("OAuth session %s was already consumed", session_id)
            return None
        for session in live:
            if session.code_verifier:
                return session
        return live[0] if live else None

    def delete(self, session_id: str | None) -> None:
        """Drop the session everywhere. Without an id only the cookies can be cleared."""
        if session_id is None:
            self._cookies.discard("")
            return
        for channel in self._channels:
            channel.discard(session_id)

    def apply_cookies(self, response: Response) -> None:
        self._cookies.apply(response)


class OAuthSessionStore:
    """Process-scoped entry point; created once per ``SocialSync`` instance."""

    def __init__(
        self,
        config: SocialSyncConfig,
        *,
        fallback: SessionBackend | None = None,
        time_func: Callable[[], float] | None = None,
    ) -> None:
        self._config = config
        self._time_func = time_func or time.time
        self._fallback = fallback or InMemorySessionBackend(
            ttl_seconds=config.session_ttl_seconds,
            purge_grace_seconds=config.purge_grace_seconds,
            purge_probability=config.purge_probability,
            time_func=self._time_func,
        )

    @property
    def fallback(self) -> SessionBackend:
        return self._fallback

    def bind(self, platform: str, request_cookies: Mapping[str, str]) -> BoundSessionStore:
        cookies = CookieSessionChannel(
            platform=platform,
            cookie=self._config.cookie,
            secret=self._config.state_secret,
            ttl_seconds=self._config.session_ttl_seconds,
            request_cookies=request_cookies,
            time_func=self._time_func,
        )
        return BoundSessionStore(
            [cookies, self._fallback],
            cookies=cookies,
            ttl_seconds=self._config.session_ttl_seconds,
            time_func=self._time_func,
        )
