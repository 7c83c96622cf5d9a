"""
End-to-end wiring test through HealthTrackerService with in-process
collaborators only.
"""

from pathlib import Path

import pytest

from adapters.cloud.blob_storage import InMemoryBlobStorage, LocalDirectoryBlobStorage
from adapters.storage.keyed_store import LocalStorage
from core.config import AppConfig, BackupConfig, SecurityConfig, StorageConfig
from core.domain.models import DrugLabel, InteractionSeverity
from core.services.base import Result
from core.services.health_tracker import HealthTrackerService


class FixedLabelSource:
    async def search_labels(self, drug_name: str, limit: int | None = None):
        if drug_name == "Warfarin":
            return Result.ok([DrugLabel(drug_interactions=["Avoid ibuprofen with warfarin."])])
        return Result.ok([])


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        storage=StorageConfig(backend="memory"),
        security=SecurityConfig(bcrypt_rounds=4, kdf_iterations=1_000),
        backup=BackupConfig(encryption_key="service-test-key", cloud_dir=str(tmp_path / "cloud")),
    )


async def test_full_flow(app_config: AppConfig) -> None:
    service = HealthTrackerService(
        config=app_config,
        storage=LocalStorage.in_memory(),
        blob_storage=InMemoryBlobStorage(),
        label_source=FixedLabelSource(),
    )

    async with service.session():
        assert (await service.credentials.sign_up("a@example.com", "password1")).success
        assert (await service.credentials.sign_in("a@example.com", "password1")).success
        assert (await service.medications.save_medication("Warfarin", "5 mg", "Evening")).success
        assert (await service.medications.save_medication("Metformin", "500 mg", "Meals")).success

        assert (await service.backups.backup_data_to_cloud()).success
        assert (await service.medications.clear_all_medication_data()).success
        assert (await service.backups.restore_data_from_cloud()).success

        results = await service.interactions.check_interactions("Ibuprofen")

    assert {r.drug_name: r.interaction for r in results} == {
        "Warfarin": InteractionSeverity.SERIOUS,
        "Metformin": InteractionSeverity.NONE,
    }


def test_defaults_are_built_from_config(app_config: AppConfig) -> None:
    service = HealthTrackerService(config=app_config, label_source=FixedLabelSource())

    assert isinstance(service.blob_storage, LocalDirectoryBlobStorage)
    assert service.blob_storage.root == Path(app_config.backup.cloud_dir)
    assert service.credentials.config.bcrypt_rounds == 4
    assert service.interactions.config is app_config.drug_labels
