"""
Tests for the shared building blocks: Result, the error hierarchy and the
structured operation results.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from core.domain.errors import (
    AuthError,
    ConflictError,
    DataIntegrityError,
    ErrorCode,
    InvalidCredentialsError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from core.domain.models import BackupResult, OperationResult, StatusKey
from core.services.base import Result


class TestResult:
    """Test the Result type for explicit error handling."""

    def test_result_ok_creates_successful_result(self) -> None:
        result: Result[str, Exception] = Result.ok("success")
        assert result.is_ok()
        assert not result.is_err()
        assert result.unwrap() == "success"

    def test_result_error_creates_failed_result(self) -> None:
        error = TransportError("HTTP 503")
        result: Result[str, TransportError] = Result.err(error)
        assert not result.is_ok()
        assert result.is_err()
        assert result.unwrap_or("default") == "default"
        assert result.unwrap_err() is error

    def test_unwrap_raises_on_error_result(self) -> None:
        result: Result[str, TransportError] = Result.err(TransportError("HTTP 503"))

        with pytest.raises(TransportError, match="HTTP 503"):
            result.unwrap()


class TestErrors:
    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (ValidationError("bad"), ErrorCode.VALIDATION),
            (AuthError(), ErrorCode.AUTH),
            (ConflictError("dup"), ErrorCode.CONFLICT),
            (NotFoundError("gone"), ErrorCode.NOT_FOUND),
            (InvalidCredentialsError(), ErrorCode.INVALID_CREDENTIALS),
            (TransportError("down"), ErrorCode.TRANSPORT),
            (DataIntegrityError("broken"), ErrorCode.DATA_INTEGRITY),
        ],
    )
    def test_each_error_carries_its_code(self, error: Exception, code: ErrorCode) -> None:
        assert error.code is code  # type: ignore[attr-defined]

    def test_default_messages(self) -> None:
        assert AuthError().message == "User not authenticated"
        assert InvalidCredentialsError().message == "Invalid email or password"

    def test_operation_result_from_error(self) -> None:
        result = OperationResult.from_error(NotFoundError("Medication not found"))

        assert result.success is False
        assert result.message == "Medication not found"
        assert result.error is ErrorCode.NOT_FOUND

    def test_backup_result_serializes_size_in_kb(self) -> None:
        result = BackupResult.ok("Data backed up successfully", size_kb=3)

        assert result.to_json_dict() == {
            "success": True,
            "message": "Data backed up successfully",
            "sizeInKB": 3,
        }


class TestStatusKey:
    def test_snapshot_key_format(self) -> None:
        key = StatusKey("a@b.com", "2026-10-19", "med_1_abc")

        assert key.to_snapshot_key() == "medication_status:a@b.com:2026-10-19:med_1_abc"

    @given(
        user_id=st.emails(),
        day=st.dates().map(lambda d: d.isoformat()).filter(lambda s: len(s) == 10),
        medication_id=st.from_regex(r"med_[0-9]{1,13}_[0-9a-f]{10}", fullmatch=True),
    )
    def test_snapshot_key_parses_back(self, user_id: str, day: str, medication_id: str) -> None:
        key = StatusKey(user_id, day, medication_id)

        assert StatusKey.from_snapshot_key(key.to_snapshot_key()) == key

    @pytest.mark.parametrize(
        "raw",
        [
            "medication_status:a@b.com:med_1",
            "medication_status:a@b.com:19-10-2026:med_1",
            "other_prefix:a@b.com:2026-10-19:med_1",
            "",
        ],
    )
    def test_malformed_snapshot_key_is_rejected(self, raw: str) -> None:
        with pytest.raises(ValueError):
            StatusKey.from_snapshot_key(raw)
