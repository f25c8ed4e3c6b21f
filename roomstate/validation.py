"""Input validation and sanitization, applied before anything reaches a backend.

Every check here is pure and synchronous. Functions either return a
normalized value or raise InvalidInput / WeakPassword, so services can fail
fast without touching storage.

Tier 2 module: imports from roomstate.constants and roomstate.errors.
"""

import re
from collections.abc import Iterable

from roomstate.constants import (
    ANSWER_MAX_LENGTH,
    CATEGORIES,
    PASSWORD_MIN_LENGTH,
    PLAYER_NAME_MAX_LENGTH,
    ROOM_CODE_MAX_LENGTH,
    ROOM_CODE_MIN_LENGTH,
)
from roomstate.errors import InvalidInput, WeakPassword

_ROOM_CODE_RE = re.compile(
    rf"^[A-Z0-9-]{{{ROOM_CODE_MIN_LENGTH},{ROOM_CODE_MAX_LENGTH}}}$"
)
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_DANGEROUS_PATTERNS = (
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE),
    re.compile(r"<object\b[^<]*(?:(?!</object>)<[^<]*)*</object>", re.IGNORECASE),
    re.compile(r"<embed\b[^>]*>", re.IGNORECASE),
    re.compile(r"""on\w+\s*=\s*["'][^"']*["']""", re.IGNORECASE),
    re.compile(r"on\w+\s*=\s*[^\s>]*", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
)

_CATEGORY_SET = frozenset(CATEGORIES)


# ---------------------------------------------------------------------------
# Room codes
# ---------------------------------------------------------------------------


def normalize_room_code(room_code: object) -> str:
    """Normalizes a room code to its stored form.

    Input is case-insensitive and may carry surrounding whitespace. The
    stored form is uppercase, restricted to [A-Z0-9-], 4 to 64 characters.

    Raises:
        InvalidInput: If the code cannot be normalized to a valid form.
    """
    if not isinstance(room_code, str):
        raise InvalidInput("Room code must be a string.")
    normalized = room_code.strip().upper()
    if not _ROOM_CODE_RE.match(normalized):
        raise InvalidInput(
            f"Room code must be {ROOM_CODE_MIN_LENGTH}-{ROOM_CODE_MAX_LENGTH} "
            "characters of A-Z, 0-9 or '-'."
        )
    return normalized


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


def normalize_email(email: object) -> str:
    """Trims and lower-cases an email, rejecting anything not RFC-shaped."""
    if not isinstance(email, str):
        raise InvalidInput("Invalid email address.")
    normalized = email.strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise InvalidInput("Invalid email address.")
    return normalized


def check_password_strength(password: object) -> None:
    """Raises WeakPassword unless the password is 8+ chars with a-z, A-Z and 0-9."""
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        raise WeakPassword(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters."
        )
    if not (
        re.search(r"[a-z]", password)
        and re.search(r"[A-Z]", password)
        and re.search(r"[0-9]", password)
    ):
        raise WeakPassword(
            "Password must contain uppercase, lowercase, and numbers."
        )


# ---------------------------------------------------------------------------
# Free text
# ---------------------------------------------------------------------------


def sanitize_html(text: str) -> str:
    """Strips script-capable markup: script/iframe/object/embed, on* handlers, js URLs."""
    if not text:
        return ""
    for pattern in _DANGEROUS_PATTERNS:
        text = pattern.sub("", text)
    return text


def truncate(text: str, max_length: int) -> str:
    return text[:max_length]


def sanitize_player_name(raw_name: object) -> str:
    """Cleans a display name: sanitized, whitespace-collapsed, at most 32 chars.

    Raises:
        InvalidInput: If nothing printable remains.
    """
    if not isinstance(raw_name, str):
        raise InvalidInput("Player name is required.")
    cleaned = " ".join(sanitize_html(raw_name.strip()).split())
    cleaned = truncate(cleaned, PLAYER_NAME_MAX_LENGTH).strip()
    if not cleaned:
        raise InvalidInput("Player name is required.")
    return cleaned


def sanitize_answer(answer: str) -> str:
    return sanitize_html(truncate(answer, ANSWER_MAX_LENGTH))


# ---------------------------------------------------------------------------
# Game vocabulary
# ---------------------------------------------------------------------------


def filter_valid_categories(categories: Iterable[object]) -> list[str]:
    """Keeps canonical category names only, first occurrence wins, order kept."""
    seen: set[str] = set()
    valid: list[str] = []
    for entry in categories:
        if not isinstance(entry, str):
            continue
        name = sanitize_html(entry).strip()
        if name not in _CATEGORY_SET or name in seen:
            continue
        seen.add(name)
        valid.append(name)
    return valid
