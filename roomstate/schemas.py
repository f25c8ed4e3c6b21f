"""Core data models: shared Pydantic types for the room state store.

Every room, player, account and session that crosses a backend boundary
flows through these types. Both backends persist and return exactly these
shapes, which is what lets one contract suite run against either.

This is a Tier 1 leaf module: it imports only from pydantic, the stdlib and
roomstate.constants. Everything else imports from here.

Usage:
    from roomstate.schemas import GameRoom, Player, User, ApiResponse
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from roomstate.constants import GAME_TTL

GameStep = Literal["lobby", "categories", "spicy", "game", "summary"]
SpicyLevel = Literal["Mild", "Medium", "Hot", "Extra-Hot"]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------


class Player(BaseModel):
    """One participant in a room. Owned by its GameRoom, never shared."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    email: str | None = None
    is_ready: bool = False
    selected_categories: list[str] = Field(default_factory=list)
    selected_spicy_level: SpicyLevel | None = None


class GameRound(BaseModel):
    """One question and every player's answer to it, keyed by player id."""

    model_config = ConfigDict(extra="forbid")

    question: str
    answers: dict[str, str] = Field(default_factory=dict)


class GameRoom(BaseModel):
    """Ephemeral state for one multiplayer room (24h TTL).

    player_ids mirrors players in order. GameStore keeps the two in sync;
    backends store whatever they are given. expires_at is the TTL source of
    truth: once it passes, the room is invisible to every read. When omitted it
    is created_at + GAME_TTL.

    Mutable: merged field-by-field on every game_update.
    """

    model_config = ConfigDict(extra="forbid")

    room_code: str
    host_id: str
    players: list[Player] = Field(default_factory=list)
    player_ids: list[str] = Field(default_factory=list)
    step: GameStep = "lobby"
    spicy_level: SpicyLevel = "Mild"
    chaos_mode: bool = False
    common_categories: list[str] = Field(default_factory=list)
    rounds: list[GameRound] = Field(default_factory=list)
    current_question: str = ""
    current_question_index: int = 0
    total_questions: int = 0
    summary: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None
    completed_at: datetime | None = None

    @model_validator(mode="after")
    def _default_expiry(self) -> "GameRoom":
        if self.expires_at is None:
            self.expires_at = self.created_at + GAME_TTL
        return self


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class User(BaseModel):
    """Stored account record. Frozen: immutable after signup."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)


class PublicUser(BaseModel):
    """The externally visible slice of a User. Never carries the hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str


class AuthSession(BaseModel):
    """An authentication session. Many per user; expires after 7 days."""

    model_config = ConfigDict(frozen=True)

    token: str
    user_id: str
    created_at: datetime
    expires_at: datetime


class SignUpResult(BaseModel):
    """Returned by sign_up and sign_in: the account id and a fresh token."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    token: str


# ---------------------------------------------------------------------------
# API envelope
# ---------------------------------------------------------------------------


class ApiError(BaseModel):
    """Error detail inside ApiResponse.error.

    code is a stable uppercase string like "NOT_FOUND" or "RATE_LIMITED",
    taken from the StoreError taxonomy in roomstate.errors.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ApiResponse(BaseModel):
    """Universal response envelope. Every API endpoint returns this shape."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    data: Any | None = None
    error: ApiError | None = None
