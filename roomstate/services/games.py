"""GameStore: room business rules on top of a Backend.

Validates and normalizes everything before the backend sees it. An invalid
room code, name or update payload fails with InvalidInput and never reaches
storage. GameStore is also the single owner of the players / player_ids
invariant: player_ids is always the ordered id projection of players, ids
are unique, and host_id is a member. Backends trust whatever they're given.

Roster changes (join, players updates) are read-modify-write, so they run
under a per-room asyncio.Lock. That orders them within this process;
across processes the relational backend's last-committed-wins applies.

Tier 3 orchestration module: imports from hooks/interfaces (Tier 1),
schemas, errors, validation, constants.

Usage:
    from roomstate.services.games import GameStore

    games = GameStore(backend)
    room = await games.create_room("abcd-12", host_id="u1", host_name="Ada")
    room = await games.join_room("ABCD-12", user_id="u2", name="Bo")
"""

import asyncio
import logging
import weakref
from datetime import timedelta
from typing import Any

from pydantic import TypeAdapter, ValidationError

from roomstate.constants import GAME_TTL
from roomstate.errors import InvalidInput, NotFound
from roomstate.hooks.interfaces import Backend, GameListener, Unsubscribe
from roomstate.schemas import GameRoom, GameRound, GameStep, Player, utcnow
from roomstate.validation import (
    filter_valid_categories,
    normalize_room_code,
    sanitize_answer,
    sanitize_player_name,
)

logger = logging.getLogger("roomstate")

# Set at creation (room_code, created_at, expires_at) or derived (player_ids).
_IMMUTABLE_FIELDS = frozenset({"room_code", "created_at", "expires_at", "player_ids"})
MUTABLE_FIELDS = frozenset(GameRoom.model_fields) - _IMMUTABLE_FIELDS

_FIELD_ADAPTERS: dict[str, TypeAdapter] = {
    name: TypeAdapter(GameRoom.model_fields[name].annotation) for name in MUTABLE_FIELDS
}


def player_in_room(room: GameRoom, user_id: str) -> bool:
    """True if user_id is a member. Callers use this to authorize updates."""
    return user_id in room.player_ids


def _clean_player(player: Player) -> Player:
    return player.model_copy(
        update={
            "name": sanitize_player_name(player.name),
            "selected_categories": filter_valid_categories(player.selected_categories),
        }
    )


def _clean_round(game_round: GameRound) -> GameRound:
    return game_round.model_copy(
        update={
            "answers": {
                player_id: sanitize_answer(answer)
                for player_id, answer in game_round.answers.items()
            }
        }
    )


class GameStore:
    """Room CRUD, roster mutation and change subscriptions."""

    def __init__(self, backend: Backend, *, game_ttl: timedelta = GAME_TTL) -> None:
        self._backend = backend
        self._game_ttl = game_ttl
        self._room_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, room_code: str) -> asyncio.Lock:
        lock = self._room_locks.get(room_code)
        if lock is None:
            lock = asyncio.Lock()
            self._room_locks[room_code] = lock
        return lock

    # -- Reads -------------------------------------------------------------

    async def get_room(self, room_code: str) -> GameRoom:
        """Returns a live room.

        Raises:
            InvalidInput: Malformed room code.
            NotFound: Room absent, deleted or expired.
        """
        code = normalize_room_code(room_code)
        room = await self._backend.game_get(code)
        if room is None:
            raise NotFound("Room not found.")
        return room

    async def list_rooms(
        self, user_id: str, step: GameStep | None = None
    ) -> list[GameRoom]:
        if step is not None:
            step = _validate_field("step", step)
        return await self._backend.game_list(user_id, step)

    # -- Lifecycle ---------------------------------------------------------

    async def create_room(
        self,
        room_code: str,
        host_id: str,
        host_name: str,
        host_email: str | None = None,
    ) -> GameRoom:
        """Creates a lobby room with the host as its only player.

        Raises:
            InvalidInput: Malformed room code, empty host id or name.
            Conflict: A live room already uses this code.
        """
        code = normalize_room_code(room_code)
        if not isinstance(host_id, str) or not host_id.strip():
            raise InvalidInput("Host id is required.")
        host = Player(id=host_id, name=sanitize_player_name(host_name), email=host_email)
        now = utcnow()
        room = GameRoom(
            room_code=code,
            host_id=host_id,
            players=[host],
            player_ids=[host_id],
            created_at=now,
            expires_at=now + self._game_ttl,
        )
        created = await self._backend.game_create(code, room)
        logger.info("Room %s created", code)
        return created

    async def delete_room(self, room_code: str) -> None:
        await self._backend.game_delete(normalize_room_code(room_code))

    # -- Mutation ----------------------------------------------------------

    async def join_room(
        self,
        room_code: str,
        user_id: str,
        name: str,
        email: str | None = None,
    ) -> GameRoom:
        """Adds a player to a room. Idempotent: a member rejoining is a no-op.

        Raises:
            InvalidInput: Malformed room code, empty user id or name.
            NotFound: Room absent or expired.
        """
        code = normalize_room_code(room_code)
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidInput("User id is required.")
        player = Player(id=user_id, name=sanitize_player_name(name), email=email)

        async with self._lock_for(code):
            room = await self._backend.game_get(code)
            if room is None:
                raise NotFound("Room not found.")
            if player_in_room(room, user_id):
                return room
            players = [*room.players, player]
            updated = await self._backend.game_update(
                code,
                {"players": players, "player_ids": [p.id for p in players]},
            )
        if updated is None:
            raise NotFound("Room not found.")
        logger.info("Player joined room %s (%d players)", code, len(updated.players))
        return updated

    async def update_room(self, room_code: str, fields: dict[str, Any]) -> GameRoom:
        """Merges the given fields into a room.

        Only fields in MUTABLE_FIELDS are accepted. A players update
        recomputes player_ids. Names, categories and answers are sanitized.

        Raises:
            InvalidInput: Malformed code, unknown/immutable field, bad value,
                duplicate player ids, or a host that isn't a member.
            NotFound: Room absent or expired.
        """
        code = normalize_room_code(room_code)
        clean = _clean_fields(fields)

        async with self._lock_for(code):
            if "players" in clean or "host_id" in clean:
                current = await self._backend.game_get(code)
                if current is None:
                    raise NotFound("Room not found.")
                member_ids = clean.get("player_ids", current.player_ids)
                host_id = clean.get("host_id", current.host_id)
                if host_id not in member_ids:
                    raise InvalidInput("Host must be a player in the room.")
            updated = await self._backend.game_update(code, clean)
        if updated is None:
            raise NotFound("Room not found.")
        return updated

    def subscribe(self, room_code: str, callback: GameListener) -> Unsubscribe:
        """Registers a change listener. Relational backends never fire it."""
        return self._backend.game_subscribe(normalize_room_code(room_code), callback)


def _validate_field(name: str, value: Any) -> Any:
    try:
        return _FIELD_ADAPTERS[name].validate_python(value)
    except ValidationError as exc:
        raise InvalidInput(f"Invalid value for field '{name}'.") from exc


def _clean_fields(fields: dict[str, Any]) -> dict[str, Any]:
    if not fields:
        raise InvalidInput("No fields to update.")
    rejected = sorted(set(fields) - MUTABLE_FIELDS)
    if rejected:
        raise InvalidInput(f"Fields cannot be updated: {', '.join(rejected)}.")

    clean = {name: _validate_field(name, value) for name, value in fields.items()}

    if "players" in clean:
        players = [_clean_player(p) for p in clean["players"]]
        ids = [p.id for p in players]
        if len(set(ids)) != len(ids):
            raise InvalidInput("Player ids must be unique.")
        clean["players"] = players
        clean["player_ids"] = ids
    if "rounds" in clean:
        clean["rounds"] = [_clean_round(r) for r in clean["rounds"]]
    if "common_categories" in clean:
        clean["common_categories"] = filter_valid_categories(clean["common_categories"])
    return clean
