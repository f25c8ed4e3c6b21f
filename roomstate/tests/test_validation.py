"""Tests for roomstate.validation: normalization and sanitization helpers."""

import pytest

from roomstate.errors import InvalidInput, WeakPassword
from roomstate.validation import (
    check_password_strength,
    filter_valid_categories,
    normalize_email,
    normalize_room_code,
    sanitize_answer,
    sanitize_html,
    sanitize_player_name,
)


class TestRoomCode:
    @pytest.mark.parametrize(
        "raw, expected",
        [("abcd-12", "ABCD-12"), ("  ABCD ", "ABCD"), ("x1y2", "X1Y2"), ("A" * 64, "A" * 64)],
    )
    def test_normalizes(self, raw, expected) -> None:
        assert normalize_room_code(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "A" * 65, "AB CD", "ABCD_12", "ÄBCD", None, 1234])
    def test_rejects(self, raw) -> None:
        with pytest.raises(InvalidInput):
            normalize_room_code(raw)


class TestEmail:
    def test_trims_and_lowercases(self) -> None:
        assert normalize_email("  Ada@Example.COM ") == "ada@example.com"

    @pytest.mark.parametrize("raw", ["", "ada", "ada@example", "ada@@example.com", None])
    def test_rejects(self, raw) -> None:
        with pytest.raises(InvalidInput):
            normalize_email(raw)


class TestPasswordStrength:
    def test_accepts_strong(self) -> None:
        check_password_strength("Secret123")

    @pytest.mark.parametrize("raw", ["Sec12", "secret123", "SECRET123", "SecretAbc", None])
    def test_rejects_weak(self, raw) -> None:
        with pytest.raises(WeakPassword):
            check_password_strength(raw)


class TestSanitizeHtml:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("hello<script>alert(1)</script>", "hello"),
            ("<iframe src='x'></iframe>ok", "ok"),
            ("<object data='x'></object>ok", "ok"),
            ("<embed src='x'>ok", "ok"),
            ("<b onclick=\"steal()\">hi</b>", "<b >hi</b>"),
            ("javascript:alert(1)", "alert(1)"),
            ("data:text/html,boom", ",boom"),
            ("plain text", "plain text"),
            ("", ""),
        ],
    )
    def test_strips_dangerous_markup(self, raw, expected) -> None:
        assert sanitize_html(raw) == expected


class TestPlayerName:
    def test_collapses_whitespace(self) -> None:
        assert sanitize_player_name("  Ada \n  Lovelace  ") == "Ada Lovelace"

    def test_truncates_to_32(self) -> None:
        assert len(sanitize_player_name("x" * 50)) == 32

    @pytest.mark.parametrize("raw", ["", "   ", "<script>x</script>", None])
    def test_rejects_empty(self, raw) -> None:
        with pytest.raises(InvalidInput):
            sanitize_player_name(raw)


class TestAnswer:
    def test_truncates_to_5000(self) -> None:
        assert len(sanitize_answer("y" * 5001)) == 5000

    def test_strips_script(self) -> None:
        assert sanitize_answer("yes<script>x()</script>") == "yes"


class TestVocabulary:
    def test_filter_keeps_canonical_in_order_without_duplicates(self) -> None:
        assert filter_valid_categories(
            ["Core Values", "Nope", "Mind Games", "Core Values", 7]
        ) == ["Core Values", "Mind Games"]

    def test_filter_empty(self) -> None:
        assert filter_valid_categories([]) == []
