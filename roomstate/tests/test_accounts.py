"""Tests for roomstate.services.accounts and roomstate.hooks.credentials.

Uses MemoryBackend and a low-round PBKDF2 verifier to keep hashing fast.
"""

import pytest
import pytest_asyncio

from roomstate.errors import Conflict, InvalidCredentials, InvalidInput, WeakPassword
from roomstate.hooks.credentials import PasslibCredentialVerifier
from roomstate.hooks.memory import MemoryBackend
from roomstate.services.accounts import SessionService

PASSWORD = "Secret123"


@pytest_asyncio.fixture
async def backend():
    store = MemoryBackend()
    yield store
    await store.close()


@pytest.fixture
def verifier() -> PasslibCredentialVerifier:
    return PasslibCredentialVerifier(rounds=1000)


@pytest.fixture
def accounts(backend, verifier) -> SessionService:
    return SessionService(backend, verifier)


# ---------------------------------------------------------------------------
# Credential verifier
# ---------------------------------------------------------------------------


class TestPasslibCredentialVerifier:
    def test_hash_then_verify(self, verifier) -> None:
        stored = verifier.hash(PASSWORD)
        assert stored != PASSWORD
        assert verifier.verify(PASSWORD, stored) is True

    def test_wrong_password_fails(self, verifier) -> None:
        assert verifier.verify("Wrong1234", verifier.hash(PASSWORD)) is False

    def test_hashes_are_salted(self, verifier) -> None:
        assert verifier.hash(PASSWORD) != verifier.hash(PASSWORD)

    def test_malformed_hash_returns_false(self, verifier) -> None:
        assert verifier.verify(PASSWORD, "not-a-hash") is False

    def test_verifies_hashes_from_other_round_counts(self, verifier) -> None:
        stronger = PasslibCredentialVerifier(rounds=2000)
        assert verifier.verify(PASSWORD, stronger.hash(PASSWORD)) is True


# ---------------------------------------------------------------------------
# Sign-up
# ---------------------------------------------------------------------------


class TestSignUp:
    @pytest.mark.asyncio
    async def test_sign_up_returns_live_session(self, accounts) -> None:
        result = await accounts.sign_up("ada@example.com", PASSWORD)
        assert result.user_id
        assert await accounts.validate_session(result.token) == result.user_id

    @pytest.mark.asyncio
    async def test_email_is_normalized(self, accounts, backend) -> None:
        await accounts.sign_up("  Ada@Example.COM ", PASSWORD)
        user = await backend.user_find_by_email("ada@example.com")
        assert user is not None

    @pytest.mark.asyncio
    async def test_password_is_stored_hashed(self, accounts, backend) -> None:
        await accounts.sign_up("ada@example.com", PASSWORD)
        user = await backend.user_find_by_email("ada@example.com")
        assert user.password_hash != PASSWORD
        assert user.password_hash.startswith("$pbkdf2-sha256$")

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts_case_insensitively(self, accounts) -> None:
        await accounts.sign_up("ada@example.com", PASSWORD)
        with pytest.raises(Conflict):
            await accounts.sign_up("ADA@example.com", PASSWORD)

    @pytest.mark.parametrize("email", ["", "ada", "ada@", "@example.com", "ada@example", "a da@x.io"])
    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, accounts, email) -> None:
        with pytest.raises(InvalidInput):
            await accounts.sign_up(email, PASSWORD)

    @pytest.mark.parametrize("password", ["Short1", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    @pytest.mark.asyncio
    async def test_weak_password_rejected(self, accounts, backend, password) -> None:
        with pytest.raises(WeakPassword):
            await accounts.sign_up("ada@example.com", password)
        assert await backend.user_find_by_email("ada@example.com") is None

    @pytest.mark.asyncio
    async def test_weak_password_is_invalid_input(self, accounts) -> None:
        with pytest.raises(InvalidInput):
            await accounts.sign_up("ada@example.com", "weak")


# ---------------------------------------------------------------------------
# Sign-in / sign-out
# ---------------------------------------------------------------------------


class TestSignIn:
    @pytest.mark.asyncio
    async def test_sign_in_opens_new_session(self, accounts) -> None:
        created = await accounts.sign_up("ada@example.com", PASSWORD)
        result = await accounts.sign_in("ADA@example.com", PASSWORD)
        assert result.user_id == created.user_id
        assert result.token != created.token
        assert await accounts.validate_session(created.token) == created.user_id
        assert await accounts.validate_session(result.token) == created.user_id

    @pytest.mark.asyncio
    async def test_wrong_password_raises_invalid_credentials(self, accounts) -> None:
        await accounts.sign_up("ada@example.com", PASSWORD)
        with pytest.raises(InvalidCredentials):
            await accounts.sign_in("ada@example.com", "Wrong1234")

    @pytest.mark.asyncio
    async def test_unknown_email_raises_same_error(self, accounts) -> None:
        with pytest.raises(InvalidCredentials) as unknown:
            await accounts.sign_in("nobody@example.com", PASSWORD)
        await accounts.sign_up("ada@example.com", PASSWORD)
        with pytest.raises(InvalidCredentials) as wrong:
            await accounts.sign_in("ada@example.com", "Wrong1234")
        assert unknown.value.message == wrong.value.message

    @pytest.mark.asyncio
    async def test_malformed_email_raises_invalid_credentials(self, accounts) -> None:
        with pytest.raises(InvalidCredentials):
            await accounts.sign_in("not-an-email", PASSWORD)


class TestSessions:
    @pytest.mark.asyncio
    async def test_sign_out_invalidates_token(self, accounts) -> None:
        result = await accounts.sign_up("ada@example.com", PASSWORD)
        await accounts.sign_out(result.token)
        assert await accounts.validate_session(result.token) is None

    @pytest.mark.asyncio
    async def test_sign_out_is_idempotent(self, accounts) -> None:
        await accounts.sign_out("never-issued")
        await accounts.sign_out("")

    @pytest.mark.asyncio
    async def test_validate_none_or_empty(self, accounts) -> None:
        assert await accounts.validate_session(None) is None
        assert await accounts.validate_session("") is None

    @pytest.mark.asyncio
    async def test_current_user_is_public(self, accounts) -> None:
        result = await accounts.sign_up("ada@example.com", PASSWORD)
        user = await accounts.get_current_user(result.token)
        assert user.id == result.user_id
        assert user.email == "ada@example.com"
        assert "password_hash" not in user.model_dump()

    @pytest.mark.asyncio
    async def test_current_user_for_unknown_token(self, accounts) -> None:
        assert await accounts.get_current_user("unknown") is None
