"""In-memory company store.

Implements the full ``CompanyStore`` contract in process: useful for local
development without PostgreSQL and as the backing store in tests. Hybrid
ranking mirrors the SQL function: cosine similarity filtered by threshold,
blended with a simple lexical overlap score.

Founders are kept as person links (first/last name pairs in order) and
projected into ``Company.founders`` on read, like the SQL backend.
"""

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from .base import (
    CompanyNotFoundError,
    CompanyStore,
    RankingQueryError,
    ensure_vector_dimension,
)
from .models import (
    Company,
    CompanyCreate,
    CompanySearchResult,
    UPDATABLE_FIELDS,
    split_person_name,
)

logger = structlog.get_logger("company_store.memory")

SEMANTIC_WEIGHT = 0.7
LEXICAL_WEIGHT = 0.3


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity between two 1-D vectors; 0.0 when either is zero."""
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


def lexical_score(query_text: str, company: Company) -> float:
    """Fraction of query terms found in the company's name, description and tags."""
    terms = query_text.lower().split()
    if not terms:
        return 0.0
    haystack = " ".join([company.name, company.description or "", " ".join(company.tags)]).lower()
    return sum(1 for term in terms if term in haystack) / len(terms)


class InMemoryCompanyStore(CompanyStore):
    """Dictionary-backed company store."""

    def __init__(self, vector_dimension: Optional[int] = None):
        self.vector_dimension = vector_dimension
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._founder_links: Dict[str, List[Tuple[str, str]]] = {}
        self._embeddings: Dict[str, np.ndarray] = {}

    def _project(self, company_id: str) -> Company:
        row = self._rows[company_id]
        founders = [
            f"{first_name} {last_name}".strip()
            for first_name, last_name in self._founder_links.get(company_id, [])
        ]
        return Company(**row, founders=founders)

    def _sorted(self, company_ids) -> List[Company]:
        companies = [self._project(company_id) for company_id in company_ids]
        companies.sort(key=lambda company: company.name)
        return companies

    def _set_founders(self, company_id: str, founders: Sequence[str]) -> None:
        links: List[Tuple[str, str]] = []
        for full_name in founders:
            first_name, last_name = split_person_name(full_name)
            if first_name and (first_name, last_name) not in links:
                links.append((first_name, last_name))
        self._founder_links[company_id] = links

    async def list_by_tags(self, tags: Sequence[str]) -> List[Company]:
        required = list(tags)
        return [company for company in self._sorted(self._rows) if company.has_all_tags(required)]

    async def hybrid_search(
        self,
        query_text: str,
        query_embedding: np.ndarray,
        match_threshold: float,
        match_count: int
    ) -> List[CompanySearchResult]:
        try:
            query_vector = ensure_vector_dimension(query_embedding, self.vector_dimension)
        except ValueError as e:
            raise RankingQueryError(f"Hybrid ranking failed: {e}")

        scored = []
        for company in self._sorted(self._embeddings):
            similarity = cosine_similarity(self._embeddings[company.id], query_vector)
            if similarity <= match_threshold:
                continue
            rank_score = SEMANTIC_WEIGHT * similarity + LEXICAL_WEIGHT * lexical_score(query_text, company)
            scored.append(CompanySearchResult(
                **company.model_dump(),
                similarity=similarity,
                rank_score=rank_score,
            ))

        # sort() is stable, so equal scores keep name order
        scored.sort(key=lambda result: result.rank_score, reverse=True)
        return scored[:match_count]

    async def keyword_search(self, query_text: str, tags: Sequence[str]) -> List[Company]:
        needle = query_text.lower()
        required = list(tags)

        def matches(company: Company) -> bool:
            text_fields = [company.name, company.description, company.sector, company.stage]
            if any(value and needle in value.lower() for value in text_fields):
                return True
            list_fields = company.tags + company.backing_vcs + company.founders
            return any(value.lower() == needle for value in list_fields)

        return [
            company for company in self._sorted(self._rows)
            if matches(company) and company.has_all_tags(required)
        ]

    async def insert(self, company: CompanyCreate) -> Company:
        company_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        row = company.model_dump(exclude={"founders"})
        row.update(id=company_id, created_at=now, updated_at=now)
        self._rows[company_id] = row
        self._set_founders(company_id, company.founders)
        logger.info("Inserted company", company_id=company_id, name=company.name)
        return self._project(company_id)

    async def update_by_id(self, company_id: str, changes: Dict[str, Any]) -> Company:
        if company_id not in self._rows:
            raise CompanyNotFoundError(company_id)

        row = self._rows[company_id]
        for field in UPDATABLE_FIELDS:
            if field in changes and field != "founders":
                row[field] = copy.copy(changes[field])
        if "founders" in changes:
            self._set_founders(company_id, changes["founders"] or [])
        row["updated_at"] = datetime.now(timezone.utc)

        logger.info("Updated company", company_id=company_id, fields=sorted(changes))
        return self._project(company_id)

    async def delete_by_id(self, company_id: str) -> bool:
        if self._rows.pop(company_id, None) is None:
            logger.warning("Company not found for deletion", company_id=company_id)
            return False
        self._founder_links.pop(company_id, None)
        self._embeddings.pop(company_id, None)
        logger.info("Deleted company", company_id=company_id)
        return True

    async def get_by_id(self, company_id: str) -> Optional[Company]:
        if company_id not in self._rows:
            return None
        return self._project(company_id)

    async def list_all(self, limit: Optional[int] = None, offset: int = 0) -> List[Company]:
        companies = self._sorted(self._rows)[offset:]
        return companies if limit is None else companies[:limit]

    async def list_missing_embeddings(self) -> List[Company]:
        return self._sorted(
            company_id for company_id in self._rows if company_id not in self._embeddings
        )

    async def update_embedding(self, company_id: str, vector: np.ndarray) -> bool:
        if company_id not in self._rows:
            logger.warning("Company not found for embedding update", company_id=company_id)
            return False
        self._embeddings[company_id] = ensure_vector_dimension(vector, self.vector_dimension).copy()
        return True

    async def get_embedding(self, company_id: str) -> Optional[np.ndarray]:
        vector = self._embeddings.get(company_id)
        return None if vector is None else vector.copy()

    async def health_check(self) -> bool:
        return True
