"""
Integration service wiring the health tracking core together.

Builds storage, the cloud blob store and the drug-label client from AppConfig
and hands them to the four services:
1. CredentialStore: accounts and session
2. MedicationStore: medications and daily adherence
3. BackupSyncEngine: encrypted cloud backup/restore
4. InteractionClassifier: drug-interaction checks
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from adapters.cloud.blob_storage import BlobStorage, LocalDirectoryBlobStorage
from adapters.openfda.label_client import OpenFDALabelClient
from adapters.storage.keyed_store import LocalStorage
from core.config import AppConfig, get_config
from core.security import TextCipher
from core.services.backup_sync import BackupSyncEngine
from core.services.base import configure_logging, logger
from core.services.credential_store import CredentialStore
from core.services.interaction_classifier import DrugLabelSource, InteractionClassifier
from core.services.medication_store import MedicationStore


class HealthTrackerService:
    """
    Composition root for one process.

    Collaborators may be injected (tests, alternative backends); anything not
    supplied is built from configuration.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        storage: LocalStorage | None = None,
        blob_storage: BlobStorage | None = None,
        label_source: DrugLabelSource | None = None,
    ) -> None:
        self.config = config or get_config()
        configure_logging(self.config.logging)
        self.logger = logger.bind(component="health_tracker")

        if self.config.uses_default_backup_key:
            self.logger.warning("static_backup_key_in_use")

        self.storage = storage or LocalStorage.from_config(
            self.config.storage, self.config.security
        )
        self.blob_storage = blob_storage or LocalDirectoryBlobStorage(
            Path(self.config.backup.cloud_dir)
        )
        self._label_client: OpenFDALabelClient | None = None
        if label_source is None:
            self._label_client = OpenFDALabelClient(self.config.drug_labels)
            label_source = self._label_client

        self.credentials = CredentialStore(self.storage, self.config.security)
        self.medications = MedicationStore(self.storage, self.credentials)
        self.backups = BackupSyncEngine(
            self.credentials,
            self.medications,
            self.blob_storage,
            TextCipher(self.config.backup.encryption_key, self.config.security.kdf_iterations),
            self.config.backup,
        )
        self.interactions = InteractionClassifier(
            label_source, self.medications, self.config.drug_labels
        )
        self.logger.info(
            "health_tracker_initialized",
            storage_backend=self.config.storage.backend,
            environment=self.config.environment,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator["HealthTrackerService"]:
        """Async context manager that releases network resources on exit."""
        try:
            yield self
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._label_client is not None:
            await self._label_client.aclose()
        self.logger.info("health_tracker_closed")
