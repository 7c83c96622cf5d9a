"""
openFDA drug label client.

Searches https://api.fda.gov/drug/label.json for labels whose brand name or
generic name equals a drug, returning the interaction-relevant fields.
Failures come back as Result.err(TransportError); the classifier decides how
to degrade.
"""

import httpx
import structlog

from core.config import DrugLabelConfig
from core.domain.errors import TransportError
from core.domain.models import DrugLabel
from core.services.base import Result

logger = structlog.get_logger(__name__)


def build_search_query(drug_name: str) -> str:
    """openFDA search expression matching brand OR generic name exactly."""
    name = drug_name.replace('"', "").strip()
    return f'openfda.brand_name:"{name}" OR openfda.generic_name:"{name}"'


class OpenFDALabelClient:
    """Async drug-label lookups over a shared httpx client."""

    def __init__(self, config: DrugLabelConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=config.timeout_seconds,
            headers={"Accept": "application/json"},
        )
        self.logger = logger.bind(component="openfda_label_client")

    async def search_labels(
        self, drug_name: str, limit: int | None = None
    ) -> Result[list[DrugLabel], TransportError]:
        params: dict[str, str | int] = {
            "search": build_search_query(drug_name),
            "limit": limit or self.config.result_limit,
        }
        if self.config.api_key:
            params["api_key"] = self.config.api_key

        try:
            response = await self._client.get(self.config.base_url, params=params)
        except httpx.HTTPError as e:
            self.logger.warning("label_request_failed", drug=drug_name, error=str(e))
            return Result.err(TransportError(f"Drug label request failed: {e}"))

        if not response.is_success:
            self.logger.warning(
                "label_request_unsuccessful", drug=drug_name, status_code=response.status_code
            )
            return Result.err(
                TransportError(f"Drug label source answered HTTP {response.status_code}")
            )

        try:
            body = response.json()
            labels = [DrugLabel.model_validate(item) for item in body.get("results") or []]
        except (ValueError, AttributeError) as e:
            self.logger.warning("label_response_unreadable", drug=drug_name, error=str(e))
            return Result.err(TransportError("Drug label source returned an unreadable body"))

        self.logger.debug("labels_fetched", drug=drug_name, count=len(labels))
        return Result.ok(labels)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
