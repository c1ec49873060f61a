"""API routes for the registry service."""

import time
from typing import List, Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ...common.config import SearchConfig
from ...company_store.base import CompanyNotFoundError, CompanyStoreError
from ...company_store.models import Company, CompanyCreate, CompanyUpdate
from ...embedding.maintenance import EmbeddingMaintenance, MaintenanceError, MaintenanceReport
from ...registry.company_manager import CompanyManager, CompanyValidationError
from ...search.hybrid.resolver import SearchFailedError, SearchResolver

logger = structlog.get_logger("registry_service.api")

router = APIRouter()


class CompanyListResponse(BaseModel):
    """Response model for the company listing/search endpoint."""
    companies: List[Company] = Field(..., description="Matching companies")
    total: int = Field(
        ...,
        description="Search matches before pagination; for browse, the number of companies on this page"
    )
    strategy: str = Field(..., description="browse, tags, hybrid or keyword")
    fallback_reason: Optional[str] = Field(None, description="Why keyword search was used")
    query: str = Field("", description="Trimmed query")
    tags: List[str] = Field(default_factory=list, description="Applied tag filters")
    latency_ms: float = Field(..., description="Latency in milliseconds")


class DeleteResponse(BaseModel):
    """Response model for delete endpoint."""
    status: str = Field(..., description="Deletion status")
    message: str = Field(..., description="Status message")
    id: str = Field(..., description="Deleted company id")


def get_resolver(request: Request) -> SearchResolver:
    """Get search resolver from application state."""
    return request.app.state.resolver


def get_company_manager(request: Request) -> CompanyManager:
    """Get company manager from application state."""
    return request.app.state.company_manager


def get_maintenance(request: Request) -> EmbeddingMaintenance:
    """Get embedding maintenance from application state."""
    return request.app.state.maintenance


def get_config(request: Request) -> SearchConfig:
    return request.app.state.config


def parse_tags(tags: Optional[str]) -> List[str]:
    """Split a comma-separated ``tags`` parameter."""
    if not tags:
        return []
    return [tag.strip() for tag in tags.split(",") if tag.strip()]


@router.get("/companies", response_model=CompanyListResponse)
async def list_companies(
    q: Optional[str] = Query(None, description="Free-text search query"),
    tags: Optional[str] = Query(None, description="Comma-separated tags; companies must carry all"),
    limit: Optional[int] = Query(None, ge=1, description="Maximum number of companies"),
    offset: int = Query(0, ge=0, description="Number of companies to skip"),
    resolver: SearchResolver = Depends(get_resolver),
    company_manager: CompanyManager = Depends(get_company_manager),
    config: SearchConfig = Depends(get_config)
):
    """Search companies, or browse all of them when no search is active."""
    start_time = time.time()
    query = (q or "").strip()
    tag_filters = parse_tags(tags)

    if not query and not tag_filters:
        page_size = limit or config.registry_browse_page_size
        try:
            companies = await company_manager.list_companies(limit=page_size, offset=offset)
        except CompanyStoreError as e:
            logger.error("Failed to list companies", error=str(e))
            raise HTTPException(status_code=500, detail="Failed to fetch companies")

        return CompanyListResponse(
            companies=companies,
            total=len(companies),
            strategy="browse",
            latency_ms=(time.time() - start_time) * 1000
        )

    try:
        outcome = await resolver.search(query, tag_filters)
    except SearchFailedError as e:
        logger.error("Search failed", query=query, tags=tag_filters, error=str(e.cause or e))
        raise HTTPException(status_code=500, detail="Search failed")

    page = outcome.companies[offset:]
    if limit is not None:
        page = page[:limit]

    latency_ms = (time.time() - start_time) * 1000
    logger.info(
        "Search completed",
        query=query,
        tags=tag_filters,
        strategy=outcome.strategy.value,
        results_count=len(outcome.companies),
        latency_ms=latency_ms
    )

    return CompanyListResponse(
        companies=page,
        total=len(outcome.companies),
        strategy=outcome.strategy.value,
        fallback_reason=outcome.fallback_reason,
        query=query,
        tags=outcome.tags,
        latency_ms=latency_ms
    )


@router.post("/companies", response_model=Company, status_code=status.HTTP_201_CREATED)
async def create_company(
    payload: CompanyCreate,
    background_tasks: BackgroundTasks,
    company_manager: CompanyManager = Depends(get_company_manager)
):
    """Create a company; its embedding is computed after the response."""
    try:
        company = await company_manager.create_company(payload, refresh_embedding=False)
    except CompanyValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CompanyStoreError as e:
        logger.error("Failed to create company", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to create company")

    background_tasks.add_task(company_manager.refresh_embedding, company)
    logger.info("Company created", company_id=company.id, name=company.name)
    return company


@router.post("/companies/embeddings", response_model=MaintenanceReport)
async def backfill_embeddings(
    maintenance: EmbeddingMaintenance = Depends(get_maintenance)
):
    """Generate embeddings for companies that have none."""
    try:
        return await maintenance.backfill_embeddings()
    except MaintenanceError as e:
        logger.error("Embedding backfill failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to generate embeddings")


@router.post("/companies/embeddings/regenerate", response_model=MaintenanceReport)
async def regenerate_embeddings(
    maintenance: EmbeddingMaintenance = Depends(get_maintenance)
):
    """Regenerate embeddings for every company."""
    try:
        return await maintenance.regenerate_all_embeddings()
    except MaintenanceError as e:
        logger.error("Embedding regeneration failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to regenerate embeddings")


@router.get("/companies/{company_id}", response_model=Company)
async def get_company(
    company_id: str,
    company_manager: CompanyManager = Depends(get_company_manager)
):
    try:
        return await company_manager.get_company(company_id)
    except CompanyNotFoundError:
        raise HTTPException(status_code=404, detail="Company not found")
    except CompanyStoreError as e:
        logger.error("Failed to fetch company", company_id=company_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch company")


@router.patch("/companies/{company_id}", response_model=Company)
async def update_company(
    company_id: str,
    payload: CompanyUpdate,
    company_manager: CompanyManager = Depends(get_company_manager)
):
    """Partially update a company."""
    try:
        company = await company_manager.update_company(company_id, payload)
    except CompanyValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CompanyNotFoundError:
        raise HTTPException(status_code=404, detail="Company not found")
    except CompanyStoreError as e:
        logger.error("Failed to update company", company_id=company_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to update company")

    logger.info("Company updated", company_id=company_id)
    return company


@router.delete("/companies/{company_id}", response_model=DeleteResponse)
async def delete_company(
    company_id: str,
    company_manager: CompanyManager = Depends(get_company_manager)
):
    try:
        await company_manager.delete_company(company_id)
    except CompanyNotFoundError:
        raise HTTPException(status_code=404, detail="Company not found")
    except CompanyStoreError as e:
        logger.error("Failed to delete company", company_id=company_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to delete company")

    logger.info("Company deleted", company_id=company_id)
    return DeleteResponse(status="success", message="Deleted", id=company_id)
