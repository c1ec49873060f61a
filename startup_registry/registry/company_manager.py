"""Company administration.

Validates create/update input before it reaches the store and keeps each
company's embedding in step with the fields it is derived from. Embedding
refreshes are best effort: a provider or store failure there is logged and
never fails the create or update that triggered it.
"""

import time
from typing import Any, Dict, List, Optional, Union

import structlog

from ..common.metrics import MetricsCollector
from ..company_store.base import CompanyNotFoundError, CompanyStore, CompanyStoreError
from ..company_store.models import (
    EMBEDDING_RELEVANT_FIELDS,
    Company,
    CompanyCreate,
    CompanyUpdate,
)
from ..embedding.company_text import generate_company_text
from ..embedding.provider import EmbeddingProvider, request_embedding

logger = structlog.get_logger("registry.company_manager")


class CompanyValidationError(ValueError):
    """Malformed administrative input."""
    pass


class CompanyManager:
    """CRUD over the company store with embedding upkeep."""

    def __init__(
        self,
        store: CompanyStore,
        provider: EmbeddingProvider,
        dimension: int,
        embedding_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.provider = provider
        self.dimension = dimension
        self.embedding_timeout = embedding_timeout
        self.metrics = metrics

    def _record(self, operation: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_store_operation(operation, status)

    async def create_company(
        self,
        payload: Union[CompanyCreate, Dict[str, Any]],
        refresh_embedding: bool = True
    ) -> Company:
        """Validate and insert a company.

        With ``refresh_embedding`` the embedding is computed before returning;
        callers that schedule it themselves pass ``False``.
        """
        if isinstance(payload, dict):
            payload = CompanyCreate(**payload)

        name = (payload.name or "").strip()
        if not name:
            raise CompanyValidationError("Company name is required")
        payload = payload.model_copy(update={"name": name})

        try:
            company = await self.store.insert(payload)
        except CompanyStoreError:
            self._record("insert", "error")
            raise
        self._record("insert", "success")

        if refresh_embedding:
            await self.refresh_embedding(company)
        return company

    async def update_company(
        self,
        company_id: str,
        payload: Union[CompanyUpdate, Dict[str, Any]]
    ) -> Company:
        """Apply a partial update; re-embed when a relevant field changes value."""
        if isinstance(payload, dict):
            payload = CompanyUpdate(**payload)

        changes = payload.changes()
        if not changes:
            raise CompanyValidationError("No updatable fields provided")

        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise CompanyValidationError("Company name cannot be empty")
            changes["name"] = name

        current = await self.get_company(company_id)

        try:
            company = await self.store.update_by_id(company_id, changes)
        except CompanyStoreError:
            self._record("update", "error")
            raise
        self._record("update", "success")

        relevant = [
            field for field in EMBEDDING_RELEVANT_FIELDS
            if field in changes and getattr(company, field) != getattr(current, field)
        ]
        if relevant:
            logger.info("Embedding-relevant fields changed", company_id=company_id, fields=relevant)
            await self.refresh_embedding(company)

        return company

    async def delete_company(self, company_id: str) -> None:
        try:
            deleted = await self.store.delete_by_id(company_id)
        except CompanyStoreError:
            self._record("delete", "error")
            raise

        if not deleted:
            self._record("delete", "not_found")
            raise CompanyNotFoundError(company_id)
        self._record("delete", "success")

    async def get_company(self, company_id: str) -> Company:
        company = await self.store.get_by_id(company_id)
        if company is None:
            raise CompanyNotFoundError(company_id)
        return company

    async def list_companies(self, limit: Optional[int] = None, offset: int = 0) -> List[Company]:
        """Browse all companies by name."""
        return await self.store.list_all(limit=limit, offset=offset)

    async def refresh_embedding(self, company: Company) -> bool:
        """Recompute and store ``company``'s embedding. Never raises."""
        start_time = time.time()
        outcome = await request_embedding(
            self.provider,
            generate_company_text(company),
            self.dimension,
            timeout=self.embedding_timeout,
            purpose="company",
            metrics=self.metrics,
        )
        if not outcome.ok:
            logger.error(
                "Failed to generate embedding for company",
                company_id=company.id,
                failure=outcome.failure.value,
                detail=outcome.detail,
            )
            return False

        try:
            written = await self.store.update_embedding(company.id, outcome.vector)
        except CompanyStoreError as e:
            logger.error("Failed to update embedding for company", company_id=company.id, error=str(e))
            return False

        logger.info(
            "Refreshed company embedding",
            company_id=company.id,
            written=written,
            duration_ms=(time.time() - start_time) * 1000,
        )
        return written
