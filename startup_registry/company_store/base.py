"""Base company store interface.

Defines the abstract contract the resolver, the admin layer, and the
maintenance jobs depend on, independent of the backing implementation
(PgVector, in-memory, etc.).

All methods are asynchronous to support high-throughput services.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .models import Company, CompanyCreate, CompanySearchResult


class CompanyStore(ABC):
    """Abstract base class for company stores.

    Implementations own persistence. Read operations return ``Company``
    records with list fields never ``None``; embeddings are only reachable
    through ``get_embedding``/``update_embedding``.
    """

    @abstractmethod
    async def list_by_tags(self, tags: Sequence[str]) -> List[Company]:
        """Companies whose tag set contains every tag in ``tags``, ordered by name."""

    @abstractmethod
    async def hybrid_search(
        self,
        query_text: str,
        query_embedding: np.ndarray,
        match_threshold: float,
        match_count: int
    ) -> List[CompanySearchResult]:
        """Blend vector similarity and lexical relevance.

        Returns at most ``match_count`` rows, best match first. Failures are
        raised as ``RankingQueryError``.
        """

    @abstractmethod
    async def keyword_search(self, query_text: str, tags: Sequence[str]) -> List[Company]:
        """Case-insensitive match of ``query_text`` across searchable fields.

        A company matches when the query appears in ANY of name, description,
        sector, stage (substring) or equals an element of tags, backing_vcs,
        founders. ``tags`` are ANDed on top. Ordered by name.
        """

    @abstractmethod
    async def insert(self, company: CompanyCreate) -> Company:
        """Create a company and return the stored record."""

    @abstractmethod
    async def update_by_id(self, company_id: str, changes: Dict[str, Any]) -> Company:
        """Apply a partial update. Raises ``CompanyNotFoundError`` for unknown ids."""

    @abstractmethod
    async def delete_by_id(self, company_id: str) -> bool:
        """Delete a company. Returns ``True`` if a row was removed."""

    @abstractmethod
    async def get_by_id(self, company_id: str) -> Optional[Company]:
        """Get a company, or ``None`` when it does not exist."""

    @abstractmethod
    async def list_all(self, limit: Optional[int] = None, offset: int = 0) -> List[Company]:
        """All companies ordered by name, optionally paginated."""

    @abstractmethod
    async def list_missing_embeddings(self) -> List[Company]:
        """Companies whose embedding is null, ordered by name."""

    @abstractmethod
    async def update_embedding(self, company_id: str, vector: np.ndarray) -> bool:
        """Overwrite a company's embedding. Returns ``False`` if the company is gone."""

    @abstractmethod
    async def get_embedding(self, company_id: str) -> Optional[np.ndarray]:
        """Get a company's embedding, or ``None`` when not computed."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the store is reachable."""

    async def close(self) -> None:
        """Release connections. Backends without resources need not override."""


class CompanyStoreError(Exception):
    """Base exception for company store operations."""
    pass


class CompanyStoreConnectionError(CompanyStoreError):
    """Connection error to the backing database."""
    pass


class CompanyStoreQueryError(CompanyStoreError):
    """A store query failed."""
    pass


class RankingQueryError(CompanyStoreQueryError):
    """The hybrid ranking call failed."""
    pass


class CompanyNotFoundError(CompanyStoreError):
    """Company not found in store."""

    def __init__(self, company_id: str):
        super().__init__(f"Company {company_id} not found")
        self.company_id = company_id


def ensure_vector_dimension(vector: Any, dimension: Optional[int]) -> np.ndarray:
    """Coerce ``vector`` to a 1-D float32 array of the expected dimensionality."""
    array = np.asarray(vector, dtype=np.float32)
    if array.ndim != 1:
        raise ValueError("Vector must be one-dimensional")

    if dimension is not None and array.shape[0] != dimension:
        raise ValueError(
            f"Expected vector dimension {dimension}, "
            f"got {array.shape[0]}"
        )
    return array
