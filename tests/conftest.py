"""Shared fixtures."""

import pytest
from prometheus_client import CollectorRegistry

from startup_registry.common.metrics import MetricsCollector
from startup_registry.company_store.base import CompanyStoreQueryError, RankingQueryError
from startup_registry.embedding.provider import EmbeddingProviderError

from .stubs import ScriptedCompanyStore, StubEmbeddingProvider


@pytest.fixture
def store() -> ScriptedCompanyStore:
    return ScriptedCompanyStore()


@pytest.fixture
def provider() -> StubEmbeddingProvider:
    return StubEmbeddingProvider()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector("test-service", registry=CollectorRegistry())


@pytest.fixture
def ranking_error() -> RankingQueryError:
    return RankingQueryError("function hybrid_search_companies does not exist")


@pytest.fixture
def store_error() -> CompanyStoreQueryError:
    return CompanyStoreQueryError("connection reset")


@pytest.fixture
def provider_error() -> EmbeddingProviderError:
    return EmbeddingProviderError("Embedding provider returned status 503")
