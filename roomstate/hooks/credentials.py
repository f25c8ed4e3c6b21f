"""Password hashing: the CredentialVerifier used by SessionService.

Wraps passlib's CryptContext with PBKDF2-SHA256 (salted, iterated). The
work factor is the rounds count, tunable per deployment through
PASSWORD_HASH_ROUNDS. Tests pass a low value to stay fast.

Tier 2 service module: satisfies roomstate.hooks.interfaces.CredentialVerifier
structurally.

Usage:
    from roomstate.hooks.credentials import PasslibCredentialVerifier

    verifier = PasslibCredentialVerifier(rounds=100_000)
    stored = verifier.hash("Secret123")
    verifier.verify("Secret123", stored)  # True
"""

from passlib.context import CryptContext


class PasslibCredentialVerifier:
    """PBKDF2-SHA256 via passlib. Malformed hashes verify as False."""

    def __init__(self, rounds: int = 100_000) -> None:
        """Initialises the hashing context.

        Args:
            rounds: PBKDF2 iteration count for new hashes. Existing hashes
                keep verifying with whatever rounds they were created with.
        """
        self._context = CryptContext(
            schemes=["pbkdf2_sha256"],
            pbkdf2_sha256__default_rounds=rounds,
        )

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return self._context.verify(password, password_hash)
        except (ValueError, TypeError):
            return False
