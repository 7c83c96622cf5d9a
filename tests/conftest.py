"""
Shared fixtures: hermetic storage, cheap hashing, a controllable clock and a
signed-in user.
"""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import pytest

from adapters.cloud.blob_storage import InMemoryBlobStorage
from adapters.storage.keyed_store import LocalStorage
from core.config import BackupConfig, SecurityConfig
from core.domain.models import User
from core.security import TextCipher
from core.services.backup_sync import BackupSyncEngine
from core.services.credential_store import CredentialStore
from core.services.medication_store import MedicationStore

TEST_EMAIL = "patient@example.com"
TEST_PASSWORD = "s3cret-pass"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 19, 9, 30, tzinfo=UTC))


@pytest.fixture
def security_config() -> SecurityConfig:
    # Minimum cost factors keep the suite fast
    return SecurityConfig(bcrypt_rounds=4, kdf_iterations=1_000)


@pytest.fixture
def storage() -> LocalStorage:
    return LocalStorage.in_memory()


@pytest.fixture
def credentials(
    storage: LocalStorage, security_config: SecurityConfig, clock: FakeClock
) -> CredentialStore:
    return CredentialStore(storage, security_config, clock=clock)


@pytest.fixture
def medications(
    storage: LocalStorage, credentials: CredentialStore, clock: FakeClock
) -> MedicationStore:
    return MedicationStore(storage, credentials, clock=clock)


@pytest.fixture
async def signed_in_user(credentials: CredentialStore) -> AsyncIterator[User]:
    await credentials.sign_up(TEST_EMAIL, TEST_PASSWORD)
    result = await credentials.sign_in(TEST_EMAIL, TEST_PASSWORD)
    assert result.user is not None
    yield result.user


@pytest.fixture
def blob_storage() -> InMemoryBlobStorage:
    return InMemoryBlobStorage()


@pytest.fixture
def cipher(security_config: SecurityConfig) -> TextCipher:
    return TextCipher("test-backup-passphrase", iterations=security_config.kdf_iterations)


@pytest.fixture
def backup_engine(
    credentials: CredentialStore,
    medications: MedicationStore,
    blob_storage: InMemoryBlobStorage,
    cipher: TextCipher,
    clock: FakeClock,
) -> BackupSyncEngine:
    return BackupSyncEngine(
        credentials, medications, blob_storage, cipher, BackupConfig(timeout_seconds=5.0), clock
    )
