"""SessionService: account signup, sign-in and auth-session lifecycle.

Input shape is checked before any backend call: emails must be RFC-shaped,
passwords must be 8+ characters with lowercase, uppercase and a digit.

sign_in never reveals whether an email is registered. Unknown email and
wrong password raise the same InvalidCredentials, and an unknown email
still pays for one hash verification (against a throwaway hash) so both
paths take about the same time.

Tier 3 orchestration module: imports from hooks/interfaces (Tier 1),
schemas, errors and validation.

Usage:
    from roomstate.services.accounts import SessionService

    accounts = SessionService(backend, verifier)
    result = await accounts.sign_up("ada@example.com", "Secret123")
    await accounts.validate_session(result.token)  # result.user_id
"""

import logging
import secrets

from roomstate.errors import Conflict, InvalidCredentials, InvalidInput
from roomstate.hooks.interfaces import Backend, CredentialVerifier
from roomstate.schemas import PublicUser, SignUpResult
from roomstate.validation import check_password_strength, normalize_email

logger = logging.getLogger("roomstate")


class SessionService:
    """User accounts and authentication sessions on top of a Backend."""

    def __init__(self, backend: Backend, verifier: CredentialVerifier) -> None:
        self._backend = backend
        self._verifier = verifier
        self._dummy_hash: str | None = None

    def _timing_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = self._verifier.hash(secrets.token_urlsafe(16))
        return self._dummy_hash

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        """Creates an account and signs it in.

        Raises:
            InvalidInput: Email is not RFC-shaped.
            WeakPassword: Password fails the strength rules.
            Conflict: Email already registered.
        """
        email = normalize_email(email)
        check_password_strength(password)
        if await self._backend.user_find_by_email(email) is not None:
            raise Conflict("User already exists.")

        user = await self._backend.user_create(email, self._verifier.hash(password))
        token = await self._backend.session_create(user.id)
        logger.info("Account created: %s", user.id)
        return SignUpResult(user_id=user.id, token=token)

    async def sign_in(self, email: str, password: str) -> SignUpResult:
        """Verifies credentials and opens a new session.

        Raises:
            InvalidCredentials: For any failure, without saying which.
        """
        try:
            email = normalize_email(email)
        except InvalidInput:
            email = ""
        user = await self._backend.user_find_by_email(email) if email else None

        if user is None:
            self._verifier.verify(password, self._timing_dummy_hash())
            raise InvalidCredentials()
        if not self._verifier.verify(password, user.password_hash):
            raise InvalidCredentials()

        token = await self._backend.session_create(user.id)
        return SignUpResult(user_id=user.id, token=token)

    async def sign_out(self, token: str) -> None:
        """Deletes the session. Idempotent: unknown tokens are fine."""
        if token:
            await self._backend.session_delete(token)

    async def validate_session(self, token: str | None) -> str | None:
        """Returns the session's user id, or None if unknown or expired."""
        if not token:
            return None
        return await self._backend.session_validate(token)

    async def get_current_user(self, token: str | None) -> PublicUser | None:
        """Returns {id, email} for a live session, never the password hash."""
        user_id = await self.validate_session(token)
        if user_id is None:
            return None
        user = await self._backend.user_find_by_id(user_id)
        if user is None:
            return None
        return PublicUser(id=user.id, email=user.email)
