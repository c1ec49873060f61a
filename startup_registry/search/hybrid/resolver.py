"""Hybrid search resolver.

Turns a free-text query and a set of required tags into an ordered list of
companies:

- no query, no tags: nothing to search, empty result
- tags only: every company carrying all tags, by name
- query: embed the query and let the store blend vector similarity with
  lexical relevance; if the embedding is unavailable or unusable, or the
  ranking call fails, fall back to case-insensitive keyword matching with
  name matches promoted to the front

Embedding and ranking failures degrade quietly (logged and counted). Store
failures on the tags-only or keyword path are raised as ``SearchFailedError``.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

import structlog

from ...common.logging import log_performance
from ...common.metrics import MetricsCollector
from ...company_store.base import CompanyStore, CompanyStoreError
from ...company_store.models import Company
from ...embedding.provider import EmbeddingOutcome, EmbeddingProvider, request_embedding

logger = structlog.get_logger("search.hybrid.resolver")

DEFAULT_MATCH_THRESHOLD = 0.3
DEFAULT_MATCH_COUNT = 50


class SearchStrategy(Enum):
    """Which path produced a search result."""
    NONE = "none"
    TAGS = "tags"
    HYBRID = "hybrid"
    KEYWORD = "keyword"


class SearchFailedError(Exception):
    """A search could not be answered at all."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


@dataclass
class SearchOutcome:
    """Companies found plus the strategy that produced them."""

    companies: List[Company]
    strategy: SearchStrategy
    fallback_reason: Optional[str] = None
    tags: List[str] = field(default_factory=list)


def normalize_filters(tags: Optional[Iterable[str]]) -> List[str]:
    """Trim tag filters, drop empties and duplicates, keep first-seen order."""
    normalized: List[str] = []
    for tag in tags or []:
        text = tag.strip() if tag else ""
        if text and text not in normalized:
            normalized.append(text)
    return normalized


def partition_by_name_match(companies: List[Company], query: str) -> List[Company]:
    """Stable partition: names containing ``query`` (case-insensitive) first."""
    needle = query.lower()
    name_matches = [company for company in companies if needle in company.name.lower()]
    others = [company for company in companies if needle not in company.name.lower()]
    return name_matches + others


class SearchResolver:
    """Resolves queries against a company store and an embedding provider.

    The resolver holds no per-request state, so one instance serves
    concurrent searches.
    """

    def __init__(
        self,
        store: CompanyStore,
        provider: EmbeddingProvider,
        dimension: int,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
        match_count: int = DEFAULT_MATCH_COUNT,
        embedding_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.provider = provider
        self.dimension = dimension
        self.match_threshold = match_threshold
        self.match_count = match_count
        self.embedding_timeout = embedding_timeout
        self.metrics = metrics

    async def resolve(self, query: Optional[str], tag_filters: Optional[Iterable[str]] = None) -> List[Company]:
        """Return the companies matching ``query`` and ``tag_filters``."""
        outcome = await self.search(query, tag_filters)
        return outcome.companies

    async def search(
        self,
        query: Optional[str],
        tag_filters: Optional[Iterable[str]] = None
    ) -> SearchOutcome:
        """Resolve a search and report the strategy used."""
        query_text = (query or "").strip()
        tags = normalize_filters(tag_filters)
        start_time = time.time()

        if not query_text and not tags:
            outcome = SearchOutcome(companies=[], strategy=SearchStrategy.NONE)
        elif not query_text:
            outcome = SearchOutcome(
                companies=await self._search_by_tags(tags),
                strategy=SearchStrategy.TAGS,
                tags=tags,
            )
        else:
            outcome = await self._search_by_query(query_text, tags)

        duration = time.time() - start_time
        if self.metrics is not None:
            self.metrics.record_search(outcome.strategy.value, duration)

        log_performance(
            "company_search",
            duration * 1000,
            strategy=outcome.strategy.value,
            results_count=len(outcome.companies),
            fallback_reason=outcome.fallback_reason,
        )
        return outcome

    async def _search_by_tags(self, tags: List[str]) -> List[Company]:
        try:
            return await self.store.list_by_tags(tags)
        except CompanyStoreError as e:
            logger.error("Tag search failed", tags=tags, error=str(e))
            raise SearchFailedError("Search failed", cause=e) from e

    async def _search_by_query(self, query: str, tags: List[str]) -> SearchOutcome:
        embedding = await request_embedding(
            self.provider,
            query,
            self.dimension,
            timeout=self.embedding_timeout,
            purpose="query",
            metrics=self.metrics,
        )
        if not embedding.ok:
            return await self._fallback(query, tags, embedding.failure.value)

        companies = await self._hybrid(query, tags, embedding)
        if companies is None:
            return await self._fallback(query, tags, "ranking_query_failed")

        return SearchOutcome(companies=companies, strategy=SearchStrategy.HYBRID, tags=tags)

    async def _hybrid(
        self,
        query: str,
        tags: List[str],
        embedding: EmbeddingOutcome
    ) -> Optional[List[Company]]:
        """Run the ranking call; ``None`` means it failed and the caller falls back."""
        try:
            results = await self.store.hybrid_search(
                query,
                embedding.vector,
                match_threshold=self.match_threshold,
                match_count=self.match_count,
            )
        except CompanyStoreError as e:
            logger.warning("Hybrid ranking failed", query=query, error=str(e), error_type=type(e).__name__)
            return None

        companies = [result.to_company() for result in results]
        if tags:
            companies = [company for company in companies if company.has_all_tags(tags)]
        return companies

    async def _fallback(self, query: str, tags: List[str], reason: str) -> SearchOutcome:
        logger.warning("Falling back to keyword search", query=query, reason=reason)
        if self.metrics is not None:
            self.metrics.record_search_fallback(reason)

        try:
            companies = await self.store.keyword_search(query, tags)
        except CompanyStoreError as e:
            logger.error("Keyword search failed", query=query, tags=tags, error=str(e))
            raise SearchFailedError("Search failed", cause=e) from e

        return SearchOutcome(
            companies=partition_by_name_match(companies, query),
            strategy=SearchStrategy.KEYWORD,
            fallback_reason=reason,
            tags=tags,
        )
