"""Tests for roomstate.schemas and roomstate.errors: shapes and taxonomy."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from roomstate.errors import (
    BackendUnavailable,
    Conflict,
    CsrfRejected,
    InvalidCredentials,
    InvalidInput,
    NotFound,
    RateLimited,
    StoreError,
    Unauthorized,
    WeakPassword,
)
from roomstate.schemas import ApiResponse, GameRoom, Player, PublicUser, User


class TestGameRoom:
    def test_defaults(self) -> None:
        room = GameRoom(room_code="ABCD-12", host_id="u1")
        assert room.step == "lobby"
        assert room.spicy_level == "Mild"
        assert room.players == []
        assert room.completed_at is None
        lifetime = room.expires_at - room.created_at
        assert abs(lifetime - timedelta(hours=24)) < timedelta(seconds=1)

    def test_expiry_follows_given_created_at(self) -> None:
        created = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
        room = GameRoom(room_code="ABCD-12", host_id="u1", created_at=created)
        assert room.expires_at == created + timedelta(hours=24)

    def test_explicit_expiry_is_kept(self) -> None:
        created = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
        expires = created + timedelta(minutes=5)
        room = GameRoom(
            room_code="ABCD-12", host_id="u1", created_at=created, expires_at=expires
        )
        assert room.expires_at == expires

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GameRoom(room_code="ABCD-12", host_id="u1", score=3)

    def test_invalid_step_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GameRoom(room_code="ABCD-12", host_id="u1", step="overtime")

    def test_json_round_trip(self) -> None:
        room = GameRoom(
            room_code="ABCD-12",
            host_id="u1",
            players=[Player(id="u1", name="Ada", selected_spicy_level="Hot")],
            player_ids=["u1"],
        )
        assert GameRoom.model_validate(room.model_dump(mode="json")) == room


class TestIdentity:
    def test_user_is_frozen(self) -> None:
        user = User(id="u1", email="ada@example.com", password_hash="h")
        with pytest.raises(ValidationError):
            user.email = "eve@example.com"  # type: ignore[misc]

    def test_public_user_has_no_hash(self) -> None:
        assert "password_hash" not in PublicUser.model_fields


class TestApiResponse:
    def test_success_envelope(self) -> None:
        assert ApiResponse(ok=True, data={"a": 1}).model_dump() == {
            "ok": True,
            "data": {"a": 1},
            "error": None,
        }


class TestErrorTaxonomy:
    @pytest.mark.parametrize(
        "error, code, status",
        [
            (InvalidInput(), "INVALID_INPUT", 400),
            (WeakPassword(), "WEAK_PASSWORD", 400),
            (Conflict(), "CONFLICT", 409),
            (NotFound(), "NOT_FOUND", 404),
            (InvalidCredentials(), "INVALID_CREDENTIALS", 401),
            (Unauthorized(), "UNAUTHORIZED", 401),
            (RateLimited(5), "RATE_LIMITED", 429),
            (CsrfRejected(), "CSRF_REJECTED", 403),
            (BackendUnavailable(), "BACKEND_UNAVAILABLE", 503),
        ],
    )
    def test_codes_and_statuses(self, error, code, status) -> None:
        assert isinstance(error, StoreError)
        assert error.code == code
        assert error.http_status == status
        assert error.message

    def test_custom_message(self) -> None:
        assert str(NotFound("Room not found.")) == "Room not found."

    def test_retry_after_is_at_least_one(self) -> None:
        assert RateLimited(0).retry_after == 1
        assert RateLimited(30).retry_after == 30
