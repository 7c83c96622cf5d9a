"""
Encrypted whole-dataset backup and restore.

Pipeline: gather -> serialize -> encrypt -> upload, and in reverse
download -> decrypt -> parse -> validate -> apply.

Guarantees:
- Any failing stage aborts the whole operation; nothing is partially written.
- Restore validates the complete document before its first local write and
  applies it in one storage batch.
- Restore never touches the active session.

Known limitation: the backup passphrase is a single process-wide secret
(BackupConfig.encryption_key), not derived per user.
"""

import asyncio
import json
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import ValidationError as PydanticValidationError

from adapters.cloud.blob_storage import BlobNotFoundError, BlobStorage
from core.config import BackupConfig
from core.domain.errors import (
    DataIntegrityError,
    HealthTrackerError,
    NotFoundError,
    TransportError,
)
from core.domain.models import (
    BackupInfo,
    BackupResult,
    BackupSnapshot,
    MedicationStatus,
    StatusKey,
    UserData,
)
from core.security import TextCipher
from core.services.base import logger
from core.services.credential_store import CredentialStore
from core.services.medication_store import MedicationStore


def format_backup_date(timestamp: datetime) -> str:
    """Human-readable local date, e.g. 'October 19, 2026'."""
    local = timestamp.astimezone()
    return f"{local:%B} {local.day}, {local.year}"


class BackupSyncEngine:
    """Moves one user's data to and from a single encrypted cloud blob."""

    def __init__(
        self,
        credentials: CredentialStore,
        medications: MedicationStore,
        blob_storage: BlobStorage,
        cipher: TextCipher,
        config: BackupConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or BackupConfig()
        self._credentials = credentials
        self._medications = medications
        self._blobs = blob_storage
        self._cipher = cipher
        self._clock = clock or (lambda: datetime.now(UTC))
        self.logger = logger.bind(component="backup_sync_engine")

    async def gather_user_data(self) -> UserData:
        """Collect everything the signed-in user owns locally."""
        user = self._credentials.require_user()

        # Corrupted local records abort the backup rather than overwrite a good copy
        medications = self._medications.export_medications(user.email)
        statuses = {
            key.to_snapshot_key(): status
            for key, status in self._medications.export_statuses(user.email).items()
        }
        return UserData(
            medications=medications,
            medication_statuses=statuses,
            user_profile=self._credentials.get_profile_record(),
            health_readings=[],
        )

    async def backup_data_to_cloud(self) -> BackupResult:
        """Encrypt a fresh snapshot and overwrite the cloud backup."""
        try:
            async with asyncio.timeout(self.config.timeout_seconds):
                size_kb = await self._backup()
        except HealthTrackerError as e:
            self.logger.warning("backup_failed", reason=e.code.value, error=e.message)
            return BackupResult.from_error(e)
        except TimeoutError:
            self.logger.warning("backup_timed_out", timeout_seconds=self.config.timeout_seconds)
            return BackupResult.from_error(TransportError("Backup timed out"))
        except Exception as e:
            self.logger.exception("backup_error", error=str(e))
            return BackupResult.internal("An error occurred during backup")

        return BackupResult.ok("Data backed up successfully", size_kb=size_kb)

    async def _backup(self) -> int:
        user = self._credentials.require_user()
        self.logger.info("backup_started", user=user.email)

        snapshot = BackupSnapshot(
            version=self.config.format_version,
            timestamp=self._clock(),
            user_id=user.email,
            user_data=await self.gather_user_data(),
        )
        document = json.dumps(snapshot.to_json_dict())
        self.logger.info("backup_serialized", characters=len(document))

        try:
            encrypted = await asyncio.to_thread(self._cipher.encrypt, document)
        except Exception as e:
            raise DataIntegrityError("Failed to encrypt backup data") from e

        try:
            await self._blobs.write_file(self.config.filename, encrypted)
        except Exception as e:
            self.logger.error("backup_upload_failed", error=str(e))
            raise TransportError("Failed to save backup to cloud storage") from e

        self.logger.info(
            "backup_completed",
            medications=len(snapshot.user_data.medications),
            statuses=len(snapshot.user_data.medication_statuses),
            encrypted_characters=len(encrypted),
        )
        return round(len(encrypted) / 1024)

    async def restore_data_from_cloud(self) -> BackupResult:
        """Replace local medication data with the cloud backup."""
        try:
            async with asyncio.timeout(self.config.timeout_seconds):
                snapshot = await self._restore()
        except HealthTrackerError as e:
            self.logger.warning("restore_failed", reason=e.code.value, error=e.message)
            return BackupResult.from_error(e)
        except TimeoutError:
            self.logger.warning("restore_timed_out", timeout_seconds=self.config.timeout_seconds)
            return BackupResult.from_error(TransportError("Restore timed out"))
        except Exception as e:
            self.logger.exception("restore_error", error=str(e))
            return BackupResult.internal("An error occurred during restore")

        return BackupResult.ok(
            "Data restored successfully from backup created on "
            f"{format_backup_date(snapshot.timestamp)}"
        )

    async def _restore(self) -> BackupSnapshot:
        user = self._credentials.require_user()
        self.logger.info("restore_started", user=user.email)

        try:
            encrypted = await self._blobs.read_file(self.config.filename)
        except BlobNotFoundError as e:
            raise NotFoundError("No backup found in cloud storage") from e
        except Exception as e:
            self.logger.error("backup_download_failed", error=str(e))
            raise TransportError("Failed to read backup from cloud storage") from e

        try:
            document = await asyncio.to_thread(self._cipher.decrypt, encrypted)
        except DataIntegrityError as e:
            raise DataIntegrityError("Failed to decrypt backup data") from e

        snapshot, statuses = self._parse_snapshot(document)

        if snapshot.user_id != user.email:
            # The account email may have changed since the backup was taken
            self.logger.warning(
                "backup_owner_mismatch", backup_user=snapshot.user_id, current_user=user.email
            )

        self.logger.info("restoring_backup", created_at=snapshot.timestamp.isoformat())

        # No awaits between the first write and the end of the batch
        async with self._medications.user_lock(user.email):
            with self._medications.batch():
                self._medications.replace_medications(user.email, snapshot.user_data.medications)
                self._medications.replace_statuses(statuses)
                # The session/profile record is deliberately left alone

        self.logger.info(
            "restore_completed",
            medications=len(snapshot.user_data.medications),
            statuses=len(statuses),
        )
        return snapshot

    def _parse_snapshot(
        self, document: str
    ) -> tuple[BackupSnapshot, dict[StatusKey, MedicationStatus]]:
        try:
            raw = json.loads(document)
        except ValueError as e:
            raise DataIntegrityError("Backup data is corrupted") from e

        if not isinstance(raw, dict) or not raw.get("userId") or raw.get("userData") is None:
            raise DataIntegrityError("Invalid backup data format")

        try:
            snapshot = BackupSnapshot.model_validate(raw)
            statuses = {
                StatusKey.from_snapshot_key(key): status
                for key, status in snapshot.user_data.medication_statuses.items()
            }
        except (PydanticValidationError, ValueError) as e:
            self.logger.warning("backup_schema_invalid", error=str(e))
            raise DataIntegrityError("Invalid backup data format") from e

        for key, status in statuses.items():
            if key.medication_id != status.medication_id or key.day != status.date.isoformat():
                raise DataIntegrityError("Invalid backup data format")

        return snapshot, statuses

    async def check_backup_exists(self) -> bool:
        """Best effort: any failure reads as 'no backup'."""
        try:
            await self._blobs.read_file(self.config.filename)
        except Exception as e:
            self.logger.debug("backup_check_negative", error=str(e))
            return False
        return True

    async def get_backup_info(self) -> BackupInfo:
        """Best effort metadata about the cloud backup."""
        try:
            info = await self._blobs.stat(self.config.filename)
        except Exception as e:
            self.logger.debug("backup_info_unavailable", error=str(e))
            return BackupInfo(exists=False)
        return BackupInfo(exists=True, last_modified=info.modified_at, size=info.size_bytes)
