"""Game constants: the canonical vocabulary shared by rooms and players.

Every category, lifetime and input limit in the store resolves
through this module. No raw category strings or TTL literals anywhere else.

Tier 1 leaf module: no project imports.
"""

from datetime import timedelta

# ---------------------------------------------------------------------------
# Canonical content vocabulary
# ---------------------------------------------------------------------------

CATEGORIES: tuple[str, ...] = (
    "Hidden Attractions",
    "Power Play",
    "Emotional Depths",
    "Mind Games",
    "Shared Pasts",
    "Future Dreams",
    "Core Values",
    "Bright Ideas",
    "Trust & Alliance",
    "The Unspeakable",
)

# ---------------------------------------------------------------------------
# Lifetimes
# ---------------------------------------------------------------------------

GAME_TTL = timedelta(hours=24)
SESSION_TTL = timedelta(days=7)
CSRF_TTL = timedelta(hours=1)
CLEANUP_INTERVAL = timedelta(seconds=60)

# ---------------------------------------------------------------------------
# Input limits
# ---------------------------------------------------------------------------

ROOM_CODE_MIN_LENGTH = 4
ROOM_CODE_MAX_LENGTH = 64
PLAYER_NAME_MAX_LENGTH = 32
ANSWER_MAX_LENGTH = 5000
PASSWORD_MIN_LENGTH = 8
