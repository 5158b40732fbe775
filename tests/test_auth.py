"""Tests for the identity provider and AuthRepository."""

import pytest

from taswear.errors import AuthError, NotFoundError
from taswear.identity import EMAIL_IN_USE, NO_USER_RECORD, WRONG_PASSWORD, IdentityProvider
from taswear.repositories import AuthRepository
from taswear.resource import Error, Success
from taswear.schemas import UserRole

from .conftest import UnreachableDatabase


class TestIdentityProvider:
    def test_create_account_starts_session(self, identity):
        session = identity.create_account("Alice@Example.com", "secret1", "Alice")
        assert session.email == "alice@example.com"
        assert session.display_name == "Alice"
        assert identity.current_session == session

    def test_duplicate_account_rejected(self, identity):
        identity.create_account("alice@example.com", "secret1")
        with pytest.raises(AuthError, match="already in use"):
            identity.create_account("ALICE@example.com", "other12")

    def test_weak_password_rejected(self, identity):
        with pytest.raises(AuthError):
            identity.create_account("alice@example.com", "123")

    def test_badly_formatted_email(self, identity):
        with pytest.raises(AuthError, match="badly formatted"):
            identity.sign_in("alice", "secret1")

    def test_sign_in_wrong_password(self, identity):
        identity.create_account("alice@example.com", "secret1")
        identity.sign_out()
        with pytest.raises(AuthError) as exc_info:
            identity.sign_in("alice@example.com", "wrong-pw")
        assert str(exc_info.value) == WRONG_PASSWORD
        assert identity.current_session is None

    def test_sign_in_unknown_account(self, identity):
        with pytest.raises(AuthError) as exc_info:
            identity.sign_in("ghost@example.com", "secret1")
        assert str(exc_info.value) == NO_USER_RECORD

    def test_password_is_hashed(self, identity, db):
        identity.create_account("alice@example.com", "secret1")
        stored = db["accounts"].find_one({"email": "alice@example.com"})
        assert stored["password_hash"] != "secret1"

    def test_verify_token_roundtrip(self, identity):
        session = identity.create_account("alice@example.com", "secret1")
        identity.sign_out()
        verified = identity.verify_token(session.id_token)
        assert verified.uid == session.uid
        assert identity.current_session is None

    def test_verify_token_with_other_secret_fails(self, identity, db, settings):
        session = identity.create_account("alice@example.com", "secret1")
        other = IdentityProvider(db, settings.model_copy(update={"jwt_secret": "another"}))
        with pytest.raises(AuthError):
            other.verify_token(session.id_token)

    def test_verify_garbage_token(self, identity):
        with pytest.raises(AuthError):
            identity.verify_token("not-a-token")

    def test_hash_from_unconfigured_scheme_is_wrong_password(self, identity, db, settings):
        legacy = IdentityProvider(db, settings.model_copy(update={"password_schemes": ["sha256_crypt"]}))
        legacy.create_account("alice@example.com", "secret1")
        with pytest.raises(AuthError) as exc_info:
            identity.sign_in("alice@example.com", "secret1")
        assert str(exc_info.value) == WRONG_PASSWORD
        assert identity.current_session is None


class TestAuthRepository:
    async def test_sign_up_then_sign_in_returns_same_user(self, auth_repository):
        signed_up = await auth_repository.sign_up("bob@example.com", "hunter22", name="Bob")
        assert isinstance(signed_up, Success)
        auth_repository.sign_out()

        signed_in = await auth_repository.sign_in("bob@example.com", "hunter22")
        assert isinstance(signed_in, Success)
        assert signed_in.value.id == signed_up.value.id
        assert signed_in.value.name == "Bob"
        assert signed_in.value.role == UserRole.CUSTOMER

    async def test_sign_up_writes_profile_document(self, auth_repository, db):
        result = await auth_repository.sign_up("bob@example.com", "hunter22", role="admin", name="Bob")
        profile = db["users"].find_one({"email": "bob@example.com"})
        assert str(profile["_id"]) == result.value.id
        assert profile["role"] == "admin"
        assert profile["created_at"] is not None

    async def test_sign_up_existing_account_fails(self, auth_repository):
        await auth_repository.sign_up("bob@example.com", "hunter22")
        result = await auth_repository.sign_up("bob@example.com", "hunter22")
        assert isinstance(result, Error)
        assert result.message == EMAIL_IN_USE
        assert isinstance(result.error, AuthError)

    async def test_wrong_password_leaves_current_user_unset(self, auth_repository):
        await auth_repository.sign_up("bob@example.com", "hunter22")
        auth_repository.sign_out()

        result = await auth_repository.sign_in("bob@example.com", "wrong-password")
        assert isinstance(result, Error)
        assert result.message
        assert auth_repository.get_current_user() is None

    async def test_current_user_reflects_session(self, auth_repository):
        assert auth_repository.get_current_user() is None
        result = await auth_repository.sign_up("bob@example.com", "hunter22", name="Bob")
        current = auth_repository.get_current_user()
        assert current.id == result.value.id
        assert current.email == "bob@example.com"
        auth_repository.sign_out()
        assert auth_repository.get_current_user() is None

    async def test_sign_in_without_profile_fails(self, auth_repository, identity):
        identity.create_account("orphan@example.com", "secret1")
        identity.sign_out()
        result = await auth_repository.sign_in("orphan@example.com", "secret1")
        assert isinstance(result, Error)
        assert result.message == "User data not found"
        assert auth_repository.get_current_user() is None

    async def test_profile_write_failure_reports_error(self, identity, db):
        repository = AuthRepository(identity, UnreachableDatabase())
        result = await repository.sign_up("carol@example.com", "secret1")
        assert isinstance(result, Error)
        assert isinstance(result.error, AuthError)
        assert "Connection refused" in result.message
        # the identity was created all the same
        assert db["accounts"].find_one({"email": "carol@example.com"}) is not None
        assert repository.get_current_user() is None

    async def test_unreachable_backend_is_auth_error(self, settings):
        repository = AuthRepository(IdentityProvider(UnreachableDatabase(), settings), UnreachableDatabase())
        result = await repository.sign_in("bob@example.com", "hunter22")
        assert isinstance(result, Error)
        assert isinstance(result.error, AuthError)

    async def test_get_user_role_defaults_to_customer(self, auth_repository, db):
        result = await auth_repository.sign_up("bob@example.com", "hunter22")
        db["users"].update_one({"email": "bob@example.com"}, {"$unset": {"role": ""}})
        assert await auth_repository.get_user_role(result.value.id) == Success("customer")

    async def test_get_user_role_unknown_user(self, auth_repository):
        result = await auth_repository.get_user_role("64b7f0000000000000000000")
        assert isinstance(result, Error)
        assert isinstance(result.error, NotFoundError)

    async def test_list_users(self, auth_repository):
        await auth_repository.sign_up("a@example.com", "secret1")
        await auth_repository.sign_up("b@example.com", "secret1", role="admin")
        result = await auth_repository.list_users()
        assert {u.email for u in result.value} == {"a@example.com", "b@example.com"}

    async def test_authenticate_token(self, auth_repository, identity):
        result = await auth_repository.sign_up("bob@example.com", "hunter22")
        token = identity.current_session.id_token
        assert (await auth_repository.authenticate(token)).value.id == result.value.id
        assert isinstance(await auth_repository.authenticate("bogus"), Error)

    async def test_unexpected_provider_failure_is_error(self, auth_repository, monkeypatch):
        def broken(email, password):
            raise RuntimeError("hash backend crashed")

        monkeypatch.setattr(auth_repository._identity, "sign_in", broken)
        result = await auth_repository.sign_in("bob@example.com", "hunter22")
        assert isinstance(result, Error)
        assert isinstance(result.error, AuthError)
        assert result.message == "hash backend crashed"
