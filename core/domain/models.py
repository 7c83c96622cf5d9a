"""
Domain models for personal health tracking.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation; persisted and exported JSON uses camelCase
field names while Python code uses snake_case attributes.
"""

import re
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, NamedTuple, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.domain.errors import ErrorCode, HealthTrackerError

# Alias so fields may be called `date` without shadowing the type
CalendarDay = date


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class User(CamelModel):
    """Signed-up account. The normalized email is the identity key."""

    email: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Credential(CamelModel):
    user: User
    hashed_password: str


class Session(CamelModel):
    """The single active sign-in for this process."""

    user: User
    signed_in_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Medication(CamelModel):
    id: str
    name: str
    dosage: str
    time_of_day: str
    created_at: datetime
    user_id: str


class MedicationStatus(CamelModel):
    """Whether a medication was taken on one local calendar day."""

    medication_id: str
    date: CalendarDay
    is_taken: bool
    taken_at: datetime | None = None


_SNAPSHOT_KEY_PATTERN = re.compile(
    r"^medication_status:(?P<user_id>.+):(?P<day>\d{4}-\d{2}-\d{2}):(?P<medication_id>[^:]+)$"
)


class StatusKey(NamedTuple):
    """Composite identity of one adherence record."""

    user_id: str
    day: str
    medication_id: str

    def to_snapshot_key(self) -> str:
        return f"medication_status:{self.user_id}:{self.day}:{self.medication_id}"

    @classmethod
    def from_snapshot_key(cls, key: str) -> Self:
        match = _SNAPSHOT_KEY_PATTERN.match(key)
        if match is None:
            raise ValueError(f"Malformed medication status key: {key!r}")
        return cls(match["user_id"], match["day"], match["medication_id"])


class InteractionSeverity(str, Enum):
    """Severity tier assigned to a drug-drug interaction."""

    NONE = "none"
    MINOR = "minor"
    SERIOUS = "serious"


class InteractionResult(CamelModel):
    """Outcome of checking a new drug against one saved medication."""

    model_config = ConfigDict(frozen=True)

    drug_name: str
    interaction: InteractionSeverity
    details: str


class DrugLabel(BaseModel):
    """The parts of a drug label record used for interaction checks."""

    model_config = ConfigDict(extra="ignore")

    drug_interactions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    contraindications: list[str] = Field(default_factory=list)


class UserData(CamelModel):
    medications: list[Medication] = Field(default_factory=list)
    medication_statuses: dict[str, MedicationStatus] = Field(default_factory=dict)
    # Moved as-is between devices, never interpreted
    user_profile: Any = None
    health_readings: list[Any] = Field(default_factory=list)


class BackupSnapshot(CamelModel):
    """Whole-dataset export of one user, built for backup and consumed by restore."""

    version: str
    timestamp: datetime
    user_id: str
    user_data: UserData

    def to_json_dict(self) -> dict[str, Any]:
        # userProfile is opaque: keep explicit nulls so the document round-trips
        return self.model_dump(mode="json", by_alias=True)


# Operation results


class OperationResult(CamelModel):
    """Structured outcome of a mutating operation."""

    success: bool
    message: str
    error: ErrorCode | None = None

    @classmethod
    def ok(cls, message: str, **fields: Any) -> Self:
        return cls(success=True, message=message, **fields)

    @classmethod
    def from_error(cls, error: HealthTrackerError) -> Self:
        return cls(success=False, message=error.message, error=error.code)

    @classmethod
    def internal(cls, message: str) -> Self:
        return cls(success=False, message=message, error=ErrorCode.INTERNAL)


class AuthResult(OperationResult):
    user: User | None = None


class SaveMedicationResult(OperationResult):
    medication: Medication | None = None


class BackupResult(OperationResult):
    size_kb: int | None = Field(default=None, alias="sizeInKB")


class BackupInfo(CamelModel):
    exists: bool
    last_modified: datetime | None = None
    size: int | None = None


class AdherenceSummary(CamelModel):
    """How many of the saved medications were taken on one day."""

    date: CalendarDay
    taken_count: int = Field(ge=0)
    total_count: int = Field(ge=0)

    @property
    def completion_ratio(self) -> float:
        return self.taken_count / self.total_count if self.total_count else 0.0
