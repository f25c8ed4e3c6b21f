"""In-memory backend: dict-backed storage for rooms, users and sessions.

Single-process only. Data lives in Python dicts and is lost on restart.
All map mutations happen on the event loop under one asyncio.Lock, with no
await inside a critical section, so no two updates to a room interleave.

Expiry is hybrid:
  1. Deterministic sweep: when more than cleanup_interval has passed since
     the last sweep, the next call removes every expired room and session
     in one pass. At most one sweep per call, never probabilistic.
  2. Lazy eviction: the key being accessed is checked and evicted if
     expired, so reads are correct even between sweeps.

Subscriptions fan out through the event loop (loop.call_soon), never
inline inside game_update, so a listener that mutates the room again
cannot re-enter the update that triggered it.

Tier 2 service module: imports from roomstate.hooks.interfaces (Tier 1),
roomstate.schemas, roomstate.constants and roomstate.errors (Tier 1).

Usage:
    from roomstate.hooks.memory import MemoryBackend

    backend = MemoryBackend()
    await backend.game_create("ABCD-12", room)
    await backend.game_get("ABCD-12")  # None once expired
"""

import asyncio
import inspect
import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from roomstate.constants import CLEANUP_INTERVAL, SESSION_TTL
from roomstate.errors import Conflict
from roomstate.hooks.interfaces import GameListener, Unsubscribe
from roomstate.schemas import AuthSession, GameRoom, GameStep, User, utcnow

logger = logging.getLogger("roomstate")


class MemoryBackend:
    """Dict-backed Backend. Rooms are keyed by room_code, sessions by token.

    Returned rooms are deep copies: mutating a returned GameRoom never
    changes stored state, matching the relational backend's behaviour.
    """

    def __init__(
        self,
        *,
        session_ttl: timedelta = SESSION_TTL,
        cleanup_interval: timedelta = CLEANUP_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialises empty stores.

        Args:
            session_ttl: Default lifetime for new auth sessions.
            cleanup_interval: Minimum time between full expiry sweeps.
            clock: Returns the current aware UTC datetime. Injectable for tests.
        """
        self._games: dict[str, GameRoom] = {}
        self._users: dict[str, User] = {}
        self._user_ids_by_email: dict[str, str] = {}
        self._sessions: dict[str, AuthSession] = {}
        self._listeners: dict[str, set[GameListener]] = {}
        self._pending: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._session_ttl = session_ttl
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._last_sweep = clock()

    # -- Expiry ------------------------------------------------------------

    def _maybe_sweep(self, now: datetime) -> None:
        if now - self._last_sweep > self._cleanup_interval:
            removed = self._sweep(now)
            if removed:
                logger.debug("Memory sweep removed %d expired entries", removed)

    def _sweep(self, now: datetime) -> int:
        expired_games = [
            code for code, room in self._games.items() if room.expires_at <= now
        ]
        for code in expired_games:
            self._drop_game(code)
        expired_sessions = [
            token for token, s in self._sessions.items() if s.expires_at <= now
        ]
        for token in expired_sessions:
            del self._sessions[token]
        self._last_sweep = now
        return len(expired_games) + len(expired_sessions)

    def _drop_game(self, room_code: str) -> None:
        self._games.pop(room_code, None)
        self._listeners.pop(room_code, None)

    def _live_game(self, room_code: str, now: datetime) -> GameRoom | None:
        room = self._games.get(room_code)
        if room is None:
            return None
        if room.expires_at <= now:
            self._drop_game(room_code)
            return None
        return room

    # -- Games -------------------------------------------------------------

    async def game_create(self, room_code: str, room: GameRoom) -> GameRoom:
        async with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            if self._live_game(room_code, now) is not None:
                raise Conflict(f"Room {room_code} already exists.")
            stored = room.model_copy(deep=True)
            self._games[room_code] = stored
            return stored.model_copy(deep=True)

    async def game_get(self, room_code: str) -> GameRoom | None:
        async with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            room = self._live_game(room_code, now)
            return room.model_copy(deep=True) if room is not None else None

    async def game_update(
        self, room_code: str, fields: dict[str, Any]
    ) -> GameRoom | None:
        async with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            current = self._live_game(room_code, now)
            if current is None:
                return None
            merged = GameRoom.model_validate({**current.model_dump(), **fields})
            stored = merged.model_copy(deep=True)
            self._games[room_code] = stored
            self._notify(room_code, stored)
            return stored.model_copy(deep=True)

    async def game_delete(self, room_code: str) -> None:
        async with self._lock:
            self._drop_game(room_code)

    async def game_list(
        self, user_id: str, step: GameStep | None = None
    ) -> list[GameRoom]:
        async with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            rooms = [
                room
                for code in sorted(self._games)
                if (room := self._live_game(code, now)) is not None
                and user_id in room.player_ids
                and (step is None or room.step == step)
            ]
            return [room.model_copy(deep=True) for room in rooms]

    # -- Subscriptions -----------------------------------------------------

    def game_subscribe(self, room_code: str, callback: GameListener) -> Unsubscribe:
        self._listeners.setdefault(room_code, set()).add(callback)

        def unsubscribe() -> None:
            listeners = self._listeners.get(room_code)
            if listeners is None:
                return
            listeners.discard(callback)
            if not listeners:
                self._listeners.pop(room_code, None)

        return unsubscribe

    def _notify(self, room_code: str, room: GameRoom) -> None:
        listeners = self._listeners.get(room_code)
        if not listeners:
            return
        loop = asyncio.get_running_loop()
        for callback in list(listeners):
            loop.call_soon(self._dispatch, room_code, callback, room.model_copy(deep=True))

    def _dispatch(self, room_code: str, callback: GameListener, room: GameRoom) -> None:
        # Unsubscribed between scheduling and dispatch.
        if callback not in self._listeners.get(room_code, ()):
            return
        try:
            result = callback(room)
        except Exception:
            logger.exception("Game listener failed for room %s", room_code)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async game listener failed", exc_info=exc)

    # -- Users -------------------------------------------------------------

    async def user_create(self, email: str, password_hash: str) -> User:
        async with self._lock:
            if email in self._user_ids_by_email:
                raise Conflict("User already exists.")
            user = User(id=str(uuid.uuid4()), email=email, password_hash=password_hash)
            self._users[user.id] = user
            self._user_ids_by_email[email] = user.id
            return user

    async def user_find_by_email(self, email: str) -> User | None:
        user_id = self._user_ids_by_email.get(email)
        return self._users.get(user_id) if user_id is not None else None

    async def user_find_by_id(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    # -- Sessions ----------------------------------------------------------

    async def session_create(
        self, user_id: str, ttl: timedelta | None = None
    ) -> str:
        async with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            token = secrets.token_urlsafe(32)
            self._sessions[token] = AuthSession(
                token=token,
                user_id=user_id,
                created_at=now,
                expires_at=now + (ttl if ttl is not None else self._session_ttl),
            )
            return token

    async def session_validate(self, token: str) -> str | None:
        async with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.expires_at <= now:
                del self._sessions[token]
                return None
            return session.user_id

    async def session_delete(self, token: str) -> None:
        async with self._lock:
            self._sessions.pop(token, None)

    # -- Maintenance -------------------------------------------------------

    async def purge_expired(self) -> int:
        async with self._lock:
            return self._sweep(self._clock())

    async def health(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "backend": "memory",
            "games": len(self._games),
            "users": len(self._users),
            "sessions": len(self._sessions),
        }

    async def close(self) -> None:
        """Cancels in-flight listener tasks and drops all subscriptions."""
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        self._listeners.clear()
