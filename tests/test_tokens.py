"""Unit tests for auth/tokens.py -- password hashing, JWT issue/verify, login.

Covers:
- bcrypt hash/verify round trip and rejection of a wrong password
- create_access_token()/decode_access_token() claims
- expired, tampered and claim-less tokens decode to None
- authenticate_user(): unknown user, wrong password, inactive user, success
"""

from jose import jwt

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from core.config import get_settings
from core.database import create_db_engine


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_verify_against_garbage_hash_is_false(self) -> None:
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestTokens:
    def test_round_trip_claims(self) -> None:
        token = create_access_token(7, "alice", Role.DEPARTMENT_MANAGER.value, expire_seconds=60)
        payload = decode_access_token(token)
        assert payload is not None
        assert payload["user_id"] == 7
        assert payload["sub"] == "alice"
        assert payload["role"] == "DepartmentManager"

    def test_expired_token_is_rejected(self) -> None:
        token = create_access_token(7, "alice", "SuperAdmin", expire_seconds=-10)
        assert decode_access_token(token) is None

    def test_tampered_token_is_rejected(self) -> None:
        token = create_access_token(7, "alice", "SuperAdmin", expire_seconds=60)
        forged = jwt.encode({"user_id": 7, "role": "SuperAdmin", "sub": "alice"}, "x" * 40, algorithm="HS256")
        assert decode_access_token(forged) is None
        assert decode_access_token(token[:-2] + "xx") is None

    def test_token_without_identity_claims_is_rejected(self) -> None:
        token = jwt.encode({"sub": "alice"}, get_settings().secret_key, algorithm="HS256")
        assert decode_access_token(token) is None

    def test_garbage_is_rejected(self) -> None:
        assert decode_access_token("not.a.jwt") is None


class TestAuthenticateUser:
    def _store(self) -> UserStore:
        store = UserStore(create_db_engine("sqlite:///:memory:"))
        store.create_user(User(username="bob", role=Role.SUPER_ADMIN, hashed_password=hash_password("pw-bob-123")))
        store.create_user(
            User(
                username="gone",
                role=Role.SUPER_ADMIN,
                hashed_password=hash_password("pw-gone-123"),
                is_active=False,
            )
        )
        return store

    def test_success(self) -> None:
        user = authenticate_user(self._store(), "bob", "pw-bob-123")
        assert user is not None
        assert user.username == "bob"

    def test_unknown_user(self) -> None:
        assert authenticate_user(self._store(), "nobody", "pw-bob-123") is None

    def test_wrong_password(self) -> None:
        assert authenticate_user(self._store(), "bob", "nope") is None

    def test_inactive_user(self) -> None:
        assert authenticate_user(self._store(), "gone", "pw-gone-123") is None
