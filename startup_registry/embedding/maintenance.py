"""Bulk embedding maintenance.

``backfill_embeddings`` fills in companies whose embedding is missing and
``regenerate_all_embeddings`` overwrites every company's embedding, e.g.
after switching embedding models. Companies are processed one at a time and
a failure for one company is recorded in the report without stopping the
batch. Only a failure to list the companies aborts the run.
"""

import time
from typing import List, Optional

from pydantic import BaseModel, Field

from ..common.logging import RunLogger, log_performance
from ..common.metrics import MetricsCollector
from ..company_store.base import CompanyStore, CompanyStoreError
from ..company_store.models import Company
from .company_text import generate_company_text
from .provider import EmbeddingProvider, request_embedding

BACKFILL = "backfill"
REGENERATE = "regenerate"


class MaintenanceError(Exception):
    """The maintenance run could not start."""
    pass


class MaintenanceReport(BaseModel):
    """Summary of one maintenance run."""

    mode: str = Field(..., description="backfill or regenerate")
    updated_count: int = Field(0, description="Companies whose embedding was written")
    total: int = Field(0, description="Companies considered by the run")
    failed_ids: List[str] = Field(default_factory=list, description="Companies that could not be updated")
    message: str = Field("", description="Human readable summary")

    @property
    def succeeded(self) -> bool:
        return not self.failed_ids


class EmbeddingMaintenance:
    """Runs backfill and regeneration against a store and a provider."""

    def __init__(
        self,
        store: CompanyStore,
        provider: EmbeddingProvider,
        dimension: int,
        timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.provider = provider
        self.dimension = dimension
        self.timeout = timeout
        self.metrics = metrics

    async def backfill_embeddings(self) -> MaintenanceReport:
        """Generate embeddings for companies that have none."""
        try:
            companies = await self.store.list_missing_embeddings()
        except CompanyStoreError as e:
            raise MaintenanceError(f"Failed to fetch companies: {e}") from e

        if not companies:
            return MaintenanceReport(mode=BACKFILL, message="All companies already have embeddings")

        report = await self._process(BACKFILL, companies)
        report.message = f"Generated embeddings for {report.updated_count} companies"
        return report

    async def regenerate_all_embeddings(self) -> MaintenanceReport:
        """Overwrite the embedding of every company."""
        try:
            companies = await self.store.list_all()
        except CompanyStoreError as e:
            raise MaintenanceError(f"Failed to fetch companies: {e}") from e

        if not companies:
            return MaintenanceReport(mode=REGENERATE, message="No companies found")

        report = await self._process(REGENERATE, companies)
        report.message = f"Regenerated embeddings for {report.updated_count} companies"
        return report

    async def _process(self, mode: str, companies: List[Company]) -> MaintenanceReport:
        run_logger = RunLogger("embedding.maintenance", mode=mode)
        run_logger.info("Embedding maintenance started", total=len(companies))

        report = MaintenanceReport(mode=mode, total=len(companies))
        start_time = time.time()

        for company in companies:
            if await self._embed_company(company, run_logger):
                report.updated_count += 1
                status = "updated"
            else:
                report.failed_ids.append(company.id)
                status = "failed"

            if self.metrics is not None:
                self.metrics.record_maintenance(mode=mode, status=status)

        duration_ms = (time.time() - start_time) * 1000
        log_performance(
            f"embedding_{mode}",
            duration_ms,
            total=report.total,
            updated=report.updated_count,
            failed=len(report.failed_ids),
        )
        run_logger.info(
            "Embedding maintenance finished",
            updated=report.updated_count,
            failed_ids=report.failed_ids,
        )
        return report

    async def _embed_company(self, company: Company, run_logger: RunLogger) -> bool:
        company_logger = run_logger.bind(company_id=company.id, name=company.name)

        outcome = await request_embedding(
            self.provider,
            generate_company_text(company),
            self.dimension,
            timeout=self.timeout,
            purpose="company",
            metrics=self.metrics,
        )
        if not outcome.ok:
            company_logger.error(
                "Failed to generate embedding",
                failure=outcome.failure.value,
                detail=outcome.detail,
            )
            return False

        try:
            written = await self.store.update_embedding(company.id, outcome.vector)
        except CompanyStoreError as e:
            company_logger.error("Failed to update embedding", error=str(e))
            return False

        if not written:
            company_logger.warning("Company disappeared before embedding was written")
            return False

        company_logger.debug("Embedding updated")
        return True
