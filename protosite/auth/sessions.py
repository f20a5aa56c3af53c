"""In-memory registry of OAuth authorization attempts.

Each attempt is keyed by an unguessable state token.  Sessions live for a
fixed TTL; expired sessions are swept whenever a new one is created, and
:meth:`SessionStore.poll` checks the TTL independently, so correctness does
not depend on sweep timing.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from protosite.config import SESSION_TTL_SECONDS

log = logging.getLogger(__name__)

# 32 random bytes, i.e. 256 bits of entropy, hex encoded.
STATE_TOKEN_BYTES = 32


class SessionState(str, Enum):
    """Point-in-time answer to a status poll."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    PENDING = "pending"
    AUTHORIZED = "authorized"


@dataclass
class AuthSession:
    state: str
    created_at: float
    credential: str | None = None

    @property
    def authorized(self) -> bool:
        return self.credential is not None


@dataclass(frozen=True)
class SessionStatus:
    state: SessionState
    credential: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.state is SessionState.AUTHORIZED


class SessionStore:
    """Owns every :class:`AuthSession`; the state token is the only handle.

    All mutations happen under a single ``asyncio.Lock`` and never await
    anything else while holding it.
    """

    def __init__(
        self,
        ttl: float = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._sessions: dict[str, AuthSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: AuthSession, now: float) -> bool:
        return now - session.created_at > self.ttl

    async def create(self) -> AuthSession:
        """Create a pending session and sweep every expired one."""
        async with self._lock:
            now = self._clock()
            self._sweep(now)
            token = secrets.token_hex(STATE_TOKEN_BYTES)
            while token in self._sessions:
                token = secrets.token_hex(STATE_TOKEN_BYTES)
            session = AuthSession(state=token, created_at=now)
            self._sessions[token] = session
            return session

    async def lookup(self, state: str) -> SessionStatus:
        """Classify *state* without mutating the store."""
        async with self._lock:
            session = self._sessions.get(state)
            if session is None:
                return SessionStatus(SessionState.NOT_FOUND)
            if self._is_expired(session, self._clock()):
                return SessionStatus(SessionState.EXPIRED)
            if session.authorized:
                return SessionStatus(SessionState.AUTHORIZED, session.credential)
            return SessionStatus(SessionState.PENDING)

    async def attach_credential(self, state: str, credential: str) -> bool:
        """Attach *credential* to a live, still-pending session.

        Returns ``False`` if the session is unknown, expired or already
        authorized; the existing credential is never replaced.
        """
        async with self._lock:
            session = self._sessions.get(state)
            if session is None or self._is_expired(session, self._clock()):
                return False
            if session.authorized:
                return False
            session.credential = credential
            return True

    async def poll(self, state: str) -> SessionStatus:
        """Report the session's status, deleting it if it has expired."""
        async with self._lock:
            session = self._sessions.get(state)
            if session is None:
                return SessionStatus(SessionState.NOT_FOUND)
            if self._is_expired(session, self._clock()):
                del self._sessions[state]
                return SessionStatus(SessionState.EXPIRED)
            if session.authorized:
                return SessionStatus(SessionState.AUTHORIZED, session.credential)
            return SessionStatus(SessionState.PENDING)

    async def discard(self, state: str) -> None:
        async with self._lock:
            self._sessions.pop(state, None)

    def _sweep(self, now: float) -> int:
        expired = [token for token, s in self._sessions.items() if self._is_expired(s, now)]
        for token in expired:
            del self._sessions[token]
        if expired:
            log.debug("Swept %d expired authorization session(s)", len(expired))
        return len(expired)
