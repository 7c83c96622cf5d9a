"""
Drug-interaction checks against an external drug-label source.

For a candidate drug, every saved medication gets one independent label
lookup. Lookups run concurrently (TaskGroup + semaphore + per-lookup timeout)
and every lookup settles into a result, so one failing drug never hides or
reorders the others. Output order always follows the saved list.
"""

import asyncio
import time
from typing import Protocol

from core.config import DrugLabelConfig
from core.domain.errors import TransportError, ValidationError
from core.domain.interactions import (
    classify_severity,
    clean_interaction_text,
    find_interaction_text,
)
from core.domain.models import DrugLabel, InteractionResult, InteractionSeverity
from core.services.base import Result, logger


class DrugLabelSource(Protocol):
    """
    Protocol for the external label collaborator.

    Implementations return Result.err(TransportError) for unsuccessful
    responses instead of raising.
    """

    async def search_labels(
        self, drug_name: str, limit: int | None = None
    ) -> Result[list[DrugLabel], TransportError]: ...


class SavedMedicationProvider(Protocol):
    """Anything that can list the user's saved drug names."""

    async def get_medication_names(self) -> list[str]: ...


class StaticMedicationList:
    """Saved-drug provider over a fixed, externally supplied list."""

    def __init__(self, names: list[str]) -> None:
        self.names = list(names)

    async def get_medication_names(self) -> list[str]:
        return list(self.names)


class InteractionClassifier:
    """Fans out label lookups and tags each saved drug with a severity tier."""

    def __init__(
        self,
        label_source: DrugLabelSource,
        saved_medications: SavedMedicationProvider,
        config: DrugLabelConfig | None = None,
    ) -> None:
        self.config = config or DrugLabelConfig()
        self._labels = label_source
        self._saved = saved_medications
        self.logger = logger.bind(component="interaction_classifier")

    async def check_interactions(self, new_drug_name: str) -> list[InteractionResult]:
        """One result per saved drug, in saved-list order."""
        new_drug = new_drug_name.strip()
        if not new_drug:
            raise ValidationError("Drug name is required")

        saved_drugs = await self._saved.get_medication_names()
        self.logger.info("interaction_check_started", drug=new_drug, saved_count=len(saved_drugs))
        start_time = time.perf_counter()

        semaphore = asyncio.Semaphore(self.config.max_concurrent_lookups)

        async def _bounded(saved_drug: str) -> InteractionResult:
            async with semaphore:
                return await self._check_one(new_drug, saved_drug)

        async with asyncio.TaskGroup() as task_group:
            tasks = [
                task_group.create_task(_bounded(saved_drug), name=saved_drug)
                for saved_drug in saved_drugs
            ]

        results = [task.result() for task in tasks]

        self.logger.info(
            "interaction_check_completed",
            drug=new_drug,
            results=len(results),
            serious=sum(r.interaction is InteractionSeverity.SERIOUS for r in results),
            duration_seconds=round(time.perf_counter() - start_time, 3),
        )
        return results

    async def _check_one(self, new_drug: str, saved_drug: str) -> InteractionResult:
        """Settle one lookup into a result; never raises."""
        try:
            lookup = await asyncio.wait_for(
                self._labels.search_labels(saved_drug, self.config.result_limit),
                timeout=self.config.timeout_seconds,
            )
        except Exception as e:
            self.logger.warning("label_lookup_error", saved_drug=saved_drug, error=repr(e))
            return InteractionResult(
                drug_name=saved_drug,
                interaction=InteractionSeverity.NONE,
                details=(
                    f"Error retrieving interaction data for {saved_drug}. "
                    "Please consult your healthcare provider."
                ),
            )

        if lookup.is_err():
            self.logger.warning(
                "label_lookup_unavailable", saved_drug=saved_drug, error=str(lookup.unwrap_err())
            )
            return InteractionResult(
                drug_name=saved_drug,
                interaction=InteractionSeverity.NONE,
                details=(
                    f"Unable to retrieve interaction data for {saved_drug}. "
                    "Please consult your healthcare provider."
                ),
            )

        return self.classify_labels(new_drug, saved_drug, lookup.unwrap())

    @staticmethod
    def classify_labels(
        new_drug: str, saved_drug: str, labels: list[DrugLabel]
    ) -> InteractionResult:
        """Pure classification of already-fetched labels."""
        if not labels:
            return InteractionResult(
                drug_name=saved_drug,
                interaction=InteractionSeverity.NONE,
                details=(
                    f"No interaction data found between {new_drug} and {saved_drug} "
                    "in FDA database."
                ),
            )

        text = find_interaction_text(labels, new_drug)
        if not text:
            return InteractionResult(
                drug_name=saved_drug,
                interaction=InteractionSeverity.NONE,
                details=(
                    f"No known interactions found between {new_drug} and {saved_drug} "
                    "in FDA database."
                ),
            )

        return InteractionResult(
            drug_name=saved_drug,
            interaction=classify_severity(text),
            details=clean_interaction_text(text, new_drug, saved_drug),
        )
