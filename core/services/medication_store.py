"""
Per-user medication records and daily adherence tracking.

Storage layout (medications namespace):
- ("user_medications", email): JSON list of the user's medications
- ("medication_status", email, day, medication_id): one MedicationStatus

Every read-modify-write on a user's records runs under that user's lock, so
concurrent callers cannot lose each other's updates.
"""

import asyncio
import json
import secrets
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractContextManager, asynccontextmanager
from datetime import UTC, datetime

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from adapters.storage.keyed_store import KeyValueStore, LocalStorage, StorageKey
from core.domain.errors import (
    ConflictError,
    DataIntegrityError,
    HealthTrackerError,
    NotFoundError,
    ValidationError,
)
from core.domain.models import (
    AdherenceSummary,
    Medication,
    MedicationStatus,
    OperationResult,
    SaveMedicationResult,
    StatusKey,
)
from core.services.base import logger
from core.services.credential_store import CredentialStore

MEDICATIONS_PREFIX = "user_medications"
STATUS_PREFIX = "medication_status"

_medication_list = TypeAdapter(list[Medication])


def local_now() -> datetime:
    return datetime.now().astimezone()


def generate_medication_id(now: datetime) -> str:
    return f"med_{int(now.timestamp() * 1000)}_{secrets.token_hex(5)}"


def medications_key(user_id: str) -> StorageKey:
    return (MEDICATIONS_PREFIX, user_id)


def status_storage_key(key: StatusKey) -> StorageKey:
    return (STATUS_PREFIX, key.user_id, key.day, key.medication_id)


class MedicationStore:
    """Medication CRUD and date-bucketed taken/not-taken status for the signed-in user."""

    def __init__(
        self,
        storage: LocalStorage,
        credentials: CredentialStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store: KeyValueStore = storage.medications
        self._credentials = credentials
        self._clock = clock or local_now
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.logger = logger.bind(component="medication_store")

    # Helpers

    def _today(self) -> str:
        """Device-local calendar date."""
        return self._clock().date().isoformat()

    def _load_medications(self, user_id: str) -> list[Medication]:
        stored = self._store.get(medications_key(user_id))
        if stored is None:
            return []
        return _medication_list.validate_json(stored)

    def _write_medications(self, user_id: str, medications: list[Medication]) -> None:
        payload = [medication.to_json_dict() for medication in medications]
        self._store.set(medications_key(user_id), json.dumps(payload))

    def _load_status(self, key: StatusKey) -> MedicationStatus | None:
        stored = self._store.get(status_storage_key(key))
        return MedicationStatus.model_validate_json(stored) if stored is not None else None

    @asynccontextmanager
    async def user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Serialize writers on one user's namespace."""
        async with self._locks[user_id]:
            yield

    def batch(self) -> AbstractContextManager[KeyValueStore]:
        return self._store.batch()

    # Medications

    async def save_medication(
        self, name: str, dosage: str, time_of_day: str
    ) -> SaveMedicationResult:
        """Add a medication to the signed-in user's list."""
        try:
            medication = await self._add_medication(name, dosage, time_of_day)
        except HealthTrackerError as e:
            self.logger.info("save_medication_rejected", reason=e.code.value)
            return SaveMedicationResult.from_error(e)
        except Exception as e:
            self.logger.exception("save_medication_failed", error=str(e))
            return SaveMedicationResult.internal("An error occurred while saving the medication")

        self.logger.info("medication_saved", medication_id=medication.id)
        return SaveMedicationResult.ok("Medication added successfully", medication=medication)

    async def _add_medication(self, name: str, dosage: str, time_of_day: str) -> Medication:
        user = self._credentials.require_user()

        name, dosage, time_of_day = name.strip(), dosage.strip(), time_of_day.strip()
        if not name:
            raise ValidationError("Medication name is required")
        if not dosage:
            raise ValidationError("Dosage is required")
        if not time_of_day:
            raise ValidationError("Time of day is required")

        async with self.user_lock(user.email):
            existing = self._load_medications(user.email)
            if any(medication.name.lower() == name.lower() for medication in existing):
                raise ConflictError("This medication is already in your list")

            now = self._clock()
            medication = Medication(
                id=generate_medication_id(now),
                name=name,
                dosage=dosage,
                time_of_day=time_of_day,
                created_at=now.astimezone(UTC),
                user_id=user.email,
            )
            self._write_medications(user.email, [*existing, medication])
        return medication

    async def get_medications(self) -> list[Medication]:
        """The signed-in user's medications, newest first. Never raises."""
        user = self._credentials.get_current_user()
        if user is None:
            self.logger.debug("get_medications_without_session")
            return []
        try:
            medications = self._load_medications(user.email)
            return sorted(medications, key=lambda m: m.created_at, reverse=True)
        except Exception as e:
            self.logger.error("medication_list_unreadable", error=str(e))
            return []

    async def get_medication_names(self) -> list[str]:
        return [medication.name for medication in await self.get_medications()]

    async def delete_medication(self, medication_id: str) -> OperationResult:
        """Remove one medication. Its past status records are kept."""
        try:
            user = self._credentials.require_user()
            async with self.user_lock(user.email):
                existing = self._load_medications(user.email)
                remaining = [m for m in existing if m.id != medication_id]
                if len(remaining) == len(existing):
                    raise NotFoundError("Medication not found")
                self._write_medications(user.email, remaining)
        except HealthTrackerError as e:
            self.logger.info("delete_medication_rejected", reason=e.code.value)
            return OperationResult.from_error(e)
        except Exception as e:
            self.logger.exception("delete_medication_failed", error=str(e))
            return OperationResult.internal("An error occurred while deleting the medication")

        self.logger.info("medication_deleted", medication_id=medication_id)
        return OperationResult.ok("Medication deleted successfully")

    # Daily status

    async def update_medication_status(self, medication_id: str, is_taken: bool) -> OperationResult:
        """Record whether a medication was taken today (upsert)."""
        try:
            user = self._credentials.require_user()
            medication_id = medication_id.strip()
            if not medication_id:
                raise ValidationError("Medication ID is required")
            # ':' separates the parts of a backup snapshot key
            if ":" in medication_id:
                raise ValidationError("Invalid medication ID")
            now = self._clock()
            key = StatusKey(user.email, now.date().isoformat(), medication_id)
            status = MedicationStatus(
                medication_id=medication_id,
                date=now.date(),
                is_taken=is_taken,
                taken_at=now.astimezone(UTC) if is_taken else None,
            )
            async with self.user_lock(user.email):
                self._store.set(status_storage_key(key), json.dumps(status.to_json_dict()))
        except HealthTrackerError as e:
            self.logger.info("update_status_rejected", reason=e.code.value)
            return OperationResult.from_error(e)
        except Exception as e:
            self.logger.exception("update_status_failed", error=str(e))
            return OperationResult.internal(
                "An error occurred while updating medication status"
            )

        self.logger.info("medication_status_updated", medication_id=medication_id, taken=is_taken)
        return OperationResult.ok(f"Medication marked as {'taken' if is_taken else 'not taken'}")

    async def get_todays_medication_statuses(self) -> list[MedicationStatus]:
        user = self._credentials.get_current_user()
        if user is None:
            return []
        try:
            return [
                MedicationStatus.model_validate_json(self._store.get(key) or "")
                for key in self._store.keys((STATUS_PREFIX, user.email, self._today()))
            ]
        except PydanticValidationError as e:
            self.logger.error("status_records_unreadable", error=str(e))
            return []

    async def is_medication_taken_today(self, medication_id: str) -> bool:
        user = self._credentials.get_current_user()
        if user is None:
            return False
        try:
            status = self._load_status(StatusKey(user.email, self._today(), medication_id))
        except PydanticValidationError as e:
            self.logger.error("status_record_unreadable", error=str(e))
            return False
        return status.is_taken if status is not None else False

    async def get_daily_adherence(self) -> AdherenceSummary:
        """How many saved medications are marked taken today."""
        medications = await self.get_medications()
        taken = {s.medication_id for s in await self.get_todays_medication_statuses() if s.is_taken}
        return AdherenceSummary(
            date=self._clock().date(),
            taken_count=sum(1 for medication in medications if medication.id in taken),
            total_count=len(medications),
        )

    async def clear_all_medication_data(self) -> OperationResult:
        """Delete the user's list and every status record. Administrative use only."""
        try:
            user = self._credentials.require_user()
            async with self.user_lock(user.email):
                with self._store.batch():
                    self._store.delete(medications_key(user.email))
                    for key in self._store.keys((STATUS_PREFIX, user.email)):
                        self._store.delete(key)
        except HealthTrackerError as e:
            self.logger.info("clear_medication_data_rejected", reason=e.code.value)
            return OperationResult.from_error(e)
        except Exception as e:
            self.logger.exception("clear_medication_data_failed", error=str(e))
            return OperationResult.internal("An error occurred while clearing medication data")

        self.logger.warning("medication_data_cleared", user=user.email)
        return OperationResult.ok("Medication data cleared")

    # Backup support

    def export_medications(self, user_id: str) -> list[Medication]:
        """Every medication stored for user_id, newest first. Raises on corruption."""
        try:
            medications = self._load_medications(user_id)
        except (PydanticValidationError, ValueError) as e:
            raise DataIntegrityError("Local medication data is corrupted") from e
        return sorted(medications, key=lambda m: m.created_at, reverse=True)

    def export_statuses(self, user_id: str) -> dict[StatusKey, MedicationStatus]:
        """Every status record stored for user_id. Raises on corruption."""
        records: dict[StatusKey, MedicationStatus] = {}
        for storage_key in self._store.keys((STATUS_PREFIX, user_id)):
            _, owner, day, medication_id = storage_key
            stored = self._store.get(storage_key)
            if stored is None:
                continue
            try:
                status = MedicationStatus.model_validate_json(stored)
            except (PydanticValidationError, ValueError) as e:
                raise DataIntegrityError("Local medication status data is corrupted") from e
            records[StatusKey(owner, day, medication_id)] = status
        return records

    def replace_medications(self, user_id: str, medications: list[Medication]) -> None:
        self._write_medications(user_id, medications)

    def replace_statuses(self, records: dict[StatusKey, MedicationStatus]) -> None:
        """Overwrite exactly the given status keys; all others stay untouched."""
        for key, status in records.items():
            self._store.set(status_storage_key(key), json.dumps(status.to_json_dict()))
