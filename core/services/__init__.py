"""
Core services for the application.

This package contains the main service implementations: credentials and
session, medication tracking, encrypted backup/restore and drug-interaction
checks.
"""

from .backup_sync import BackupSyncEngine
from .base import Result
from .credential_store import CredentialStore
from .interaction_classifier import (
    DrugLabelSource,
    InteractionClassifier,
    SavedMedicationProvider,
    StaticMedicationList,
)
from .medication_store import MedicationStore

__all__ = [
    "BackupSyncEngine",
    "CredentialStore",
    "DrugLabelSource",
    "InteractionClassifier",
    "MedicationStore",
    "Result",
    "SavedMedicationProvider",
    "StaticMedicationList",
]
