"""
Complete system check exercising the full health tracking pipeline.

This script walks through:
1. Configuration loading and validation
2. Sign-up, sign-in and session handling
3. Medication tracking and daily adherence
4. Encrypted backup and restore
5. Drug-interaction checks with degraded lookups

Runs fully offline (in-memory storage, in-memory cloud, canned labels).
Pass --live to query the real openFDA endpoint for the interaction step.

Run with: python system_check.py [--live]
"""

import asyncio
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.cloud.blob_storage import InMemoryBlobStorage
from adapters.storage.keyed_store import LocalStorage
from core.config import get_config, print_config_summary, validate_config
from core.domain.errors import TransportError
from core.domain.models import DrugLabel, InteractionSeverity
from core.services.base import Result
from core.services.health_tracker import HealthTrackerService

console = Console()

CANNED_LABELS: dict[str, list[DrugLabel]] = {
    "Warfarin": [
        DrugLabel(
            drug_interactions=[
                "Concomitant use of ibuprofen and other NSAIDs with warfarin increases the "
                "risk of serious bleeding. Avoid concomitant use. See Warnings and Precautions."
            ]
        )
    ],
    "Lisinopril": [
        DrugLabel(
            warnings=[
                "NSAIDs including ibuprofen may reduce the antihypertensive effect; "
                "monitor blood pressure."
            ]
        )
    ],
    "Metformin": [],
}


class ScenarioLabelSource:
    """Label source answering from canned data; unknown drugs fail like an outage."""

    async def search_labels(self, drug_name: str, limit: int | None = None):
        await asyncio.sleep(0.05)  # Simulate network latency
        if drug_name not in CANNED_LABELS:
            return Result.err(TransportError("HTTP 503"))
        return Result.ok(CANNED_LABELS[drug_name][: limit or 5])


def _severity_style(severity: InteractionSeverity) -> str:
    return {"serious": "bold red", "minor": "yellow", "none": "green"}[severity.value]


async def run_system_check(live: bool) -> None:
    config = get_config().model_copy(deep=True)
    config.storage.backend = "memory"
    config.security.bcrypt_rounds = 4
    config.security.kdf_iterations = 10_000

    service = HealthTrackerService(
        config=config,
        storage=LocalStorage.in_memory(),
        blob_storage=InMemoryBlobStorage(),
        label_source=None if live else ScenarioLabelSource(),
    )

    async with service.session():
        console.print(Panel("Accounts", style="cyan"))
        signup = await service.credentials.sign_up("Demo.User@Example.com ", "correct-horse")
        console.print(f"sign up: {signup.message}")
        bad = await service.credentials.sign_in("demo.user@example.com", "wrong-password")
        console.print(f"sign in with wrong password: {bad.message}")
        signin = await service.credentials.sign_in("demo.user@example.com", "correct-horse")
        console.print(f"sign in: {signin.message} as {signin.user.email if signin.user else '-'}")

        console.print(Panel("Medications", style="cyan"))
        for name, dosage, when in [
            ("Warfarin", "5 mg", "Evening"),
            ("Lisinopril", "10 mg", "Morning"),
            ("Metformin", "500 mg", "With meals"),
            ("Atorvastatin", "20 mg", "Night"),
        ]:
            result = await service.medications.save_medication(name, dosage, when)
            console.print(f"{name}: {result.message}")
        duplicate = await service.medications.save_medication("warfarin", "5 mg", "Evening")
        console.print(f"duplicate: {duplicate.message}")

        medications = await service.medications.get_medications()
        await service.medications.update_medication_status(medications[0].id, True)
        adherence = await service.medications.get_daily_adherence()
        console.print(
            f"{adherence.taken_count} of {adherence.total_count} medications taken "
            f"({adherence.completion_ratio:.0%})"
        )

        console.print(Panel("Backup and restore", style="cyan"))
        backup = await service.backups.backup_data_to_cloud()
        console.print(f"backup: {backup.message} ({backup.size_kb} KB)")
        cleared = await service.medications.clear_all_medication_data()
        console.print(f"clear: {cleared.message}")
        remaining = await service.medications.get_medications()
        console.print(f"after clear: {len(remaining)} medications")
        restore = await service.backups.restore_data_from_cloud()
        console.print(f"restore: {restore.message}")
        restored = await service.medications.get_medications()
        console.print(f"after restore: {len(restored)} medications")

        console.print(Panel("Interaction check: Ibuprofen", style="cyan"))
        results = await service.interactions.check_interactions("Ibuprofen")

        table = Table(title="Interaction results")
        table.add_column("Saved drug")
        table.add_column("Severity")
        table.add_column("Details")
        for item in results:
            table.add_row(
                item.drug_name,
                f"[{_severity_style(item.interaction)}]{item.interaction.value}[/]",
                item.details,
            )
        console.print(table)


def main() -> None:
    validate_config()
    print_config_summary()
    asyncio.run(run_system_check(live="--live" in sys.argv))


if __name__ == "__main__":
    main()
