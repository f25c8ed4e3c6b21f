"""Hook interfaces: structural protocols for all swappable services.

These protocols define the contracts between the services (GameStore,
SessionService) and the storage layer. Implementations do not inherit from
anything: any class with the right methods satisfies the protocol, and the
contract suite in roomstate/tests/contracts/ is what proves it behaves.

Tier 1 leaf module: imports only from typing, collections.abc, datetime
(stdlib) and roomstate.schemas (also Tier 1).

TEAM: To add a storage backend, write a class with every method of Backend,
then register it in roomstate/tests/contracts/conftest.py and in
roomstate.api.deps.build_backend. The contract suite tells you what's left.

Usage:
    from roomstate.hooks.interfaces import Backend, CredentialVerifier
"""

from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any, Protocol, runtime_checkable

from roomstate.schemas import GameRoom, GameStep, User

GameListener = Callable[[GameRoom], Awaitable[None] | None]
Unsubscribe = Callable[[], None]


# ---------------------------------------------------------------------------
# Storage backend
# ---------------------------------------------------------------------------


@runtime_checkable
class Backend(Protocol):
    """Physical storage and expiry policy for rooms, users and sessions.

    The store is responsible for TTL enforcement: every read returns None
    (or omits the entry) once expires_at has passed, whether or not any
    cleanup has run. Callers never check expiry themselves.

    Absent entities are reported as None, never raised. Connection or
    timeout failures raise BackendUnavailable, never NotFound.
    """

    # -- Games -------------------------------------------------------------

    async def game_create(self, room_code: str, room: GameRoom) -> GameRoom:
        """Stores a new room verbatim and returns it.

        A room whose code matches an expired room replaces it.

        Raises:
            Conflict: If a live room with this code already exists.
        """
        ...

    async def game_get(self, room_code: str) -> GameRoom | None:
        """Returns the room, or None if it never existed, was deleted or expired."""
        ...

    async def game_update(
        self, room_code: str, fields: dict[str, Any]
    ) -> GameRoom | None:
        """Merges only the supplied fields into the stored room.

        Atomic per room: concurrent updates to disjoint fields are both
        visible afterwards. Never raises for a missing room.

        Returns:
            The merged room, or None if the room is absent or expired.
        """
        ...

    async def game_delete(self, room_code: str) -> None:
        """Deletes a room. No-op if not found (idempotent)."""
        ...

    async def game_list(
        self, user_id: str, step: GameStep | None = None
    ) -> list[GameRoom]:
        """Lists live rooms containing user_id, ordered by room_code."""
        ...

    def game_subscribe(self, room_code: str, callback: GameListener) -> Unsubscribe:
        """Registers a listener fired asynchronously after each successful update.

        Backends without push support may return a no-op. The returned
        unsubscribe must never raise, and once called the callback stops firing.
        """
        ...

    # -- Users -------------------------------------------------------------

    async def user_create(self, email: str, password_hash: str) -> User:
        """Creates an account.

        Raises:
            Conflict: If the email is already registered.
        """
        ...

    async def user_find_by_email(self, email: str) -> User | None:
        ...

    async def user_find_by_id(self, user_id: str) -> User | None:
        ...

    # -- Sessions ----------------------------------------------------------

    async def session_create(
        self, user_id: str, ttl: timedelta | None = None
    ) -> str:
        """Creates an auth session and returns its unguessable token."""
        ...

    async def session_validate(self, token: str) -> str | None:
        """Returns the session's user id, or None if unknown, deleted or expired."""
        ...

    async def session_delete(self, token: str) -> None:
        """Deletes a session. No-op if not found (idempotent)."""
        ...

    # -- Maintenance -------------------------------------------------------

    async def purge_expired(self) -> int:
        """Physically removes expired rooms and sessions. Returns rows removed."""
        ...

    async def health(self) -> dict[str, Any]:
        """Reports connectivity as {"status": "healthy" | "unhealthy", ...}."""
        ...

    async def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@runtime_checkable
class CredentialVerifier(Protocol):
    """Password hashing primitive consumed by SessionService.

    verify must be deterministic for a given (password, hash) pair and must
    return False, not raise, for malformed hashes.
    """

    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        ...
