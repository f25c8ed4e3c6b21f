"""CSRF token store: short-lived tokens bound to one auth session.

A token is issued for a session and checked on every state-changing
request from that session. Tokens are not consumed by validation, and a
session may hold several live tokens at once (one per open page), so the
map is keyed by token rather than by session.

Expiry follows the hybrid pattern used elsewhere: the token being checked
is evicted lazily, and a full sweep runs at most once per cleanup interval.

Process-local and synchronous, guarded by its own threading.Lock.

Usage:
    from roomstate.security.csrf import CsrfTokenStore

    csrf = CsrfTokenStore()
    token = csrf.issue(session_token)
    csrf.validate(session_token, token)  # True for the next hour
"""

import hmac
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from roomstate.constants import CLEANUP_INTERVAL, CSRF_TTL
from roomstate.schemas import utcnow

CSRF_TOKEN_BYTES = 32


@dataclass(frozen=True)
class CsrfToken:
    token: str
    session_id: str
    issued_at: datetime
    expires_at: datetime


class CsrfTokenStore:
    """Issues and validates session-bound CSRF tokens."""

    def __init__(
        self,
        ttl: timedelta = CSRF_TTL,
        *,
        cleanup_interval: timedelta = CLEANUP_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ttl = ttl
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._tokens: dict[str, CsrfToken] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    @property
    def size(self) -> int:
        return len(self._tokens)

    def _maybe_cleanup(self, now: datetime) -> None:
        if now - self._last_cleanup <= self._cleanup_interval:
            return
        expired = [t for t, entry in self._tokens.items() if entry.expires_at <= now]
        for token in expired:
            del self._tokens[token]
        self._last_cleanup = now

    def issue(self, session_id: str) -> str:
        """Returns a new 64-hex-char token bound to session_id for one TTL."""
        token = secrets.token_hex(CSRF_TOKEN_BYTES)
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            self._tokens[token] = CsrfToken(
                token=token,
                session_id=session_id,
                issued_at=now,
                expires_at=now + self._ttl,
            )
        return token

    def validate(self, session_id: str, token: str | None) -> bool:
        """False if the token is missing, expired or bound to another session."""
        if not session_id or not token:
            return False
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            entry = self._tokens.get(token)
            if entry is None:
                return False
            if entry.expires_at <= now:
                del self._tokens[token]
                return False
            return hmac.compare_digest(entry.session_id.encode(), session_id.encode())

    def revoke(self, session_id: str) -> None:
        """Drops every token bound to session_id (sign-out)."""
        with self._lock:
            stale = [t for t, entry in self._tokens.items() if entry.session_id == session_id]
            for token in stale:
                del self._tokens[token]
