"""
Account credentials and the active session.

Credentials live in the credentials namespace keyed by normalized email; the
session is a single record next to them. Signing out never touches
credentials, and signing up never signs in.
"""

import asyncio
import json
import re
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from adapters.storage.keyed_store import LocalStorage, StorageKey
from core.config import SecurityConfig
from core.domain.errors import (
    AuthError,
    ConflictError,
    HealthTrackerError,
    InvalidCredentialsError,
    ValidationError,
)
from core.domain.models import AuthResult, Credential, OperationResult, Session, User
from core.security import PasswordHasher
from core.services.base import logger

SESSION_KEY: StorageKey = ("user_session",)
USER_PREFIX = "user"

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def credential_key(email: str) -> StorageKey:
    return (USER_PREFIX, normalize_email(email))


class CredentialStore:
    """Sign-up, sign-in and session lifecycle over local storage."""

    def __init__(
        self,
        storage: LocalStorage,
        config: SecurityConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or SecurityConfig()
        self._store = storage.credentials
        self._hasher = PasswordHasher(rounds=self.config.bcrypt_rounds)
        self._clock = clock or (lambda: datetime.now(UTC))
        self.logger = logger.bind(component="credential_store")

    async def sign_up(self, email: str, password: str) -> AuthResult:
        """Create an account. Does not start a session."""
        try:
            user = await self._create_account(email, password)
        except HealthTrackerError as e:
            self.logger.info("sign_up_rejected", reason=e.code.value)
            return AuthResult.from_error(e)
        except Exception as e:
            self.logger.exception("sign_up_failed", error=str(e))
            return AuthResult.internal("An error occurred while creating your account")

        self.logger.info("account_created", email=user.email)
        return AuthResult.ok("Account created successfully", user=user)

    async def _create_account(self, email: str, password: str) -> User:
        if not email or not password:
            raise ValidationError("Email and password are required")
        if not EMAIL_PATTERN.match(email.strip()):
            raise ValidationError("Please enter a valid email address")
        if len(password) < self.config.min_password_length:
            raise ValidationError(
                f"Password must be at least {self.config.min_password_length} characters long"
            )

        key = credential_key(email)
        if self._store.get(key) is not None:
            raise ConflictError("An account with this email already exists")

        # bcrypt is CPU-bound; keep the event loop responsive
        hashed_password = await asyncio.to_thread(self._hasher.hash, password)

        # Re-check after the await: another sign-up may have won the race
        if self._store.get(key) is not None:
            raise ConflictError("An account with this email already exists")

        user = User(email=normalize_email(email), created_at=self._clock())
        credential = Credential(user=user, hashed_password=hashed_password)
        self._store.set(key, json.dumps(credential.to_json_dict()))
        return user

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Verify a password and replace the active session."""
        try:
            user = await self._authenticate(email, password)
            session = Session(user=user, signed_in_at=self._clock())
            self._store.set(SESSION_KEY, json.dumps(session.to_json_dict()))
        except HealthTrackerError as e:
            self.logger.info("sign_in_rejected", reason=e.code.value)
            return AuthResult.from_error(e)
        except Exception as e:
            self.logger.exception("sign_in_failed", error=str(e))
            return AuthResult.internal("An error occurred while signing in")

        self.logger.info("signed_in", email=user.email)
        return AuthResult.ok("Signed in successfully", user=user)

    async def _authenticate(self, email: str, password: str) -> User:
        if not email or not password:
            raise ValidationError("Email and password are required")

        stored = self._store.get(credential_key(email))
        if stored is None:
            raise InvalidCredentialsError()

        credential = Credential.model_validate_json(stored)
        is_valid = await asyncio.to_thread(
            self._hasher.verify, password, credential.hashed_password
        )
        if not is_valid:
            raise InvalidCredentialsError()
        return credential.user

    async def sign_out(self) -> OperationResult:
        """Drop the session. Succeeds whether or not one existed."""
        try:
            self._store.delete(SESSION_KEY)
        except Exception as e:
            self.logger.exception("sign_out_failed", error=str(e))
            return OperationResult.internal("An error occurred while signing out")
        self.logger.info("signed_out")
        return OperationResult.ok("Signed out successfully")

    def get_current_user(self) -> User | None:
        """The signed-in user, or None. A corrupted session counts as none."""
        stored = self._store.get(SESSION_KEY)
        if stored is None:
            return None
        try:
            return Session.model_validate_json(stored).user
        except PydanticValidationError as e:
            self.logger.warning("session_record_unreadable", error=str(e))
            return None

    def require_user(self) -> User:
        user = self.get_current_user()
        if user is None:
            raise AuthError()
        return user

    def is_signed_in(self) -> bool:
        return self.get_current_user() is not None

    def get_profile_record(self) -> Any:
        """Raw session/profile document, exported opaquely by backups."""
        stored = self._store.get(SESSION_KEY)
        if stored is None:
            return None
        try:
            return json.loads(stored)
        except ValueError:
            self.logger.warning("profile_record_unreadable")
            return None

    async def clear_all_user_data(self) -> OperationResult:
        """Delete every account and the session. Administrative use only."""
        removed = 0
        try:
            with self._store.batch():
                for key in self._store.keys((USER_PREFIX,)):
                    self._store.delete(key)
                    removed += 1
                self._store.delete(SESSION_KEY)
        except Exception as e:
            self.logger.exception("clear_user_data_failed", error=str(e))
            return OperationResult.internal("An error occurred while clearing account data")

        self.logger.warning("all_user_data_cleared", accounts_removed=removed)
        return OperationResult.ok("All account data cleared")
