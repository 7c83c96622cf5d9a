"""
Tests for account creation, sign-in and the session lifecycle.
"""

import asyncio
import json

import pytest

from adapters.storage.keyed_store import InMemoryKeyValueStore, LocalStorage, StorageKey
from core.config import SecurityConfig
from core.domain.errors import AuthError, ErrorCode
from core.domain.models import User
from core.services.credential_store import SESSION_KEY, CredentialStore, credential_key

TEST_EMAIL = "patient@example.com"
TEST_PASSWORD = "s3cret-pass"


class SessionWriteFailingStore(InMemoryKeyValueStore):
    def set(self, key: StorageKey, value: str) -> None:
        if tuple(key) == SESSION_KEY:
            raise OSError("disk full")
        super().set(key, value)


class TestSignUp:
    async def test_sign_up_creates_account_without_signing_in(
        self, credentials: CredentialStore
    ) -> None:
        result = await credentials.sign_up(TEST_EMAIL, TEST_PASSWORD)

        assert result.success
        assert result.message == "Account created successfully"
        assert result.user is not None
        assert result.user.email == TEST_EMAIL
        assert credentials.get_current_user() is None

    async def test_email_is_normalized(self, credentials: CredentialStore) -> None:
        result = await credentials.sign_up("  Patient@Example.COM ", TEST_PASSWORD)

        assert result.user is not None
        assert result.user.email == "patient@example.com"

    @pytest.mark.parametrize(
        ("email", "password", "message"),
        [
            ("", TEST_PASSWORD, "Email and password are required"),
            (TEST_EMAIL, "", "Email and password are required"),
            ("not-an-email", TEST_PASSWORD, "Please enter a valid email address"),
            ("a@b", TEST_PASSWORD, "Please enter a valid email address"),
            (TEST_EMAIL, "12345", "Password must be at least 6 characters long"),
        ],
    )
    async def test_invalid_input_is_rejected(
        self,
        credentials: CredentialStore,
        storage: LocalStorage,
        email: str,
        password: str,
        message: str,
    ) -> None:
        result = await credentials.sign_up(email, password)

        assert not result.success
        assert result.error is ErrorCode.VALIDATION
        assert result.message == message
        assert storage.credentials.keys() == []

    async def test_duplicate_email_is_a_conflict(self, credentials: CredentialStore) -> None:
        await credentials.sign_up(TEST_EMAIL, TEST_PASSWORD)

        result = await credentials.sign_up(TEST_EMAIL.upper(), "another-password")

        assert not result.success
        assert result.error is ErrorCode.CONFLICT
        assert result.message == "An account with this email already exists"

    async def test_concurrent_duplicate_sign_ups_create_one_account(
        self, credentials: CredentialStore
    ) -> None:
        results = await asyncio.gather(
            credentials.sign_up(TEST_EMAIL, TEST_PASSWORD),
            credentials.sign_up(TEST_EMAIL, TEST_PASSWORD),
        )

        assert sorted(r.success for r in results) == [False, True]

    async def test_password_is_never_stored_in_plaintext(
        self, credentials: CredentialStore, storage: LocalStorage
    ) -> None:
        await credentials.sign_up(TEST_EMAIL, TEST_PASSWORD)

        stored = storage.credentials.get(credential_key(TEST_EMAIL))

        assert stored is not None
        assert TEST_PASSWORD not in stored
        assert json.loads(stored)["user"]["email"] == TEST_EMAIL


class TestSignIn:
    async def test_sign_in_starts_session(self, credentials: CredentialStore) -> None:
        await credentials.sign_up(TEST_EMAIL, TEST_PASSWORD)

        result = await credentials.sign_in(TEST_EMAIL, TEST_PASSWORD)

        assert result.success
        assert result.message == "Signed in successfully"
        assert credentials.get_current_user() == result.user
        assert credentials.is_signed_in()

    async def test_wrong_password_and_unknown_email_look_the_same(
        self, credentials: CredentialStore
    ) -> None:
        await credentials.sign_up(TEST_EMAIL, TEST_PASSWORD)

        wrong_password = await credentials.sign_in(TEST_EMAIL, "wrong-password")
        unknown_email = await credentials.sign_in("nobody@example.com", TEST_PASSWORD)

        for result in (wrong_password, unknown_email):
            assert not result.success
            assert result.error is ErrorCode.INVALID_CREDENTIALS
            assert result.message == "Invalid email or password"
        assert credentials.get_current_user() is None

    async def test_sign_in_is_case_insensitive_on_email(
        self, credentials: CredentialStore
    ) -> None:
        await credentials.sign_up(TEST_EMAIL, TEST_PASSWORD)

        result = await credentials.sign_in(" PATIENT@example.com", TEST_PASSWORD)

        assert result.success

    async def test_second_sign_in_replaces_session(self, credentials: CredentialStore) -> None:
        await credentials.sign_up(TEST_EMAIL, TEST_PASSWORD)
        await credentials.sign_up("carer@example.com", TEST_PASSWORD)

        await credentials.sign_in(TEST_EMAIL, TEST_PASSWORD)
        await credentials.sign_in("carer@example.com", TEST_PASSWORD)

        current = credentials.get_current_user()
        assert current is not None
        assert current.email == "carer@example.com"

    async def test_missing_fields(self, credentials: CredentialStore) -> None:
        result = await credentials.sign_in("", "")

        assert result.error is ErrorCode.VALIDATION

    async def test_session_write_failure_is_an_internal_error(
        self, security_config: SecurityConfig, clock
    ) -> None:
        storage = LocalStorage(
            credentials=SessionWriteFailingStore("credentials"),
            medications=InMemoryKeyValueStore("medications"),
        )
        credentials = CredentialStore(storage, security_config, clock=clock)
        await credentials.sign_up(TEST_EMAIL, TEST_PASSWORD)

        result = await credentials.sign_in(TEST_EMAIL, TEST_PASSWORD)

        assert not result.success
        assert result.error is ErrorCode.INTERNAL
        assert result.message == "An error occurred while signing in"
        assert result.user is None
        assert credentials.get_current_user() is None


class TestSession:
    async def test_sign_out_clears_session_but_keeps_account(
        self, credentials: CredentialStore, signed_in_user: User
    ) -> None:
        result = await credentials.sign_out()

        assert result.success
        assert credentials.get_current_user() is None
        assert (await credentials.sign_in(TEST_EMAIL, TEST_PASSWORD)).success

    async def test_sign_out_without_session_succeeds(self, credentials: CredentialStore) -> None:
        assert (await credentials.sign_out()).success

    def test_require_user_without_session_raises(self, credentials: CredentialStore) -> None:
        with pytest.raises(AuthError, match="User not authenticated"):
            credentials.require_user()

    async def test_corrupted_session_reads_as_signed_out(
        self, credentials: CredentialStore, storage: LocalStorage, signed_in_user: User
    ) -> None:
        storage.credentials.set(SESSION_KEY, '{"user": 42}')

        assert credentials.get_current_user() is None
        assert not credentials.is_signed_in()

    async def test_profile_record_is_the_raw_session_document(
        self, credentials: CredentialStore, signed_in_user: User
    ) -> None:
        profile = credentials.get_profile_record()

        assert profile["user"]["email"] == signed_in_user.email
        assert "signedInAt" in profile

    async def test_clear_all_user_data_removes_accounts_and_session(
        self, credentials: CredentialStore, storage: LocalStorage, signed_in_user: User
    ) -> None:
        result = await credentials.clear_all_user_data()

        assert result.success
        assert result.message == "All account data cleared"
        assert storage.credentials.keys() == []
        assert credentials.get_current_user() is None
        assert not (await credentials.sign_in(TEST_EMAIL, TEST_PASSWORD)).success
