"""Tests for the embedding provider, outcome classification and text synthesis."""

import json

import httpx
import numpy as np
import pytest

from startup_registry.company_store.models import Company
from startup_registry.embedding.circuit_breaker import CircuitBreaker, CircuitBreakerState
from startup_registry.embedding.company_text import generate_company_text
from startup_registry.embedding.provider import (
    EmbeddingFailure,
    EmbeddingProviderError,
    OpenAIEmbeddingProvider,
    create_embedding_provider,
    request_embedding,
    validate_embedding,
)
from startup_registry.embedding.retry_handler import RetryConfig
from startup_registry.common.config import EmbeddingConfig

from .stubs import DIMENSION, StubEmbeddingProvider, unit_vector


def make_provider(handler, max_attempts=1, failure_threshold=5, max_text_chars=8000):
    return OpenAIEmbeddingProvider(
        api_url="https://embeddings.test/v1/",
        api_key="sk-test",
        model="text-embedding-3-small",
        dimension=DIMENSION,
        max_text_chars=max_text_chars,
        retry_config=RetryConfig(
            max_attempts=max_attempts,
            base_delay=0.0,
            jitter=False,
            retryable_exceptions=(EmbeddingProviderError,),
        ),
        circuit_breaker=CircuitBreaker(
            name="test_embedding",
            failure_threshold=failure_threshold,
            recovery_timeout=60.0,
            expected_exception=EmbeddingProviderError,
        ),
        transport=httpx.MockTransport(handler),
    )


def embedding_response(vector):
    return httpx.Response(200, json={"data": [{"index": 0, "embedding": list(vector)}]})


@pytest.mark.asyncio
async def test_embed_posts_openai_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return embedding_response([0.1, 0.2, 0.3, 0.4])

    provider = make_provider(handler)
    vector = await provider.embed("Acme robotics")
    await provider.close()

    np.testing.assert_allclose(vector, [0.1, 0.2, 0.3, 0.4], rtol=1e-6)
    request = seen[0]
    assert request.url == "https://embeddings.test/v1/embeddings"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert json.loads(request.content) == {
        "model": "text-embedding-3-small",
        "input": "Acme robotics",
        "dimensions": DIMENSION,
    }


@pytest.mark.asyncio
async def test_embed_truncates_long_text():
    inputs = []

    def handler(request: httpx.Request) -> httpx.Response:
        inputs.append(json.loads(request.content)["input"])
        return embedding_response([1.0, 0.0, 0.0, 0.0])

    provider = make_provider(handler, max_text_chars=10)
    await provider.embed("x" * 25)
    assert inputs == ["x" * 10]


@pytest.mark.asyncio
async def test_embed_retries_then_succeeds():
    responses = [httpx.Response(503), embedding_response([1.0, 0.0, 0.0, 0.0])]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    provider = make_provider(handler, max_attempts=2)
    vector = await provider.embed("Acme")
    assert vector.shape == (DIMENSION,)
    assert responses == []


@pytest.mark.asyncio
async def test_embed_raises_on_error_status_and_malformed_body():
    provider = make_provider(lambda request: httpx.Response(500))
    with pytest.raises(EmbeddingProviderError):
        await provider.embed("Acme")

    provider = make_provider(lambda request: httpx.Response(200, json={"data": []}))
    with pytest.raises(EmbeddingProviderError):
        await provider.embed("Acme")


@pytest.mark.asyncio
async def test_embed_wraps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = make_provider(handler)
    with pytest.raises(EmbeddingProviderError):
        await provider.embed("Acme")


@pytest.mark.asyncio
async def test_open_breaker_fails_fast():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    provider = make_provider(handler, failure_threshold=2)
    for _ in range(2):
        with pytest.raises(EmbeddingProviderError):
            await provider.embed("Acme")

    assert provider.circuit_breaker.get_state() == CircuitBreakerState.OPEN
    with pytest.raises(EmbeddingProviderError):
        await provider.embed("Acme")
    assert len(calls) == 2
    assert provider.get_stats()["circuit_breaker"]["state"] == "open"


def test_create_embedding_provider_from_config():
    config = EmbeddingConfig(
        registry_embedding_api_key="sk-config",
        registry_embedding_dimension=DIMENSION,
        registry_embedding_retry_attempts=4,
    )
    provider = create_embedding_provider(config)
    assert provider.dimension == DIMENSION
    assert provider.retry_handler.config.max_attempts == 4
    assert provider.circuit_breaker.name == "embedding_provider"


def test_validate_embedding():
    assert validate_embedding(unit_vector(0), DIMENSION) is None
    assert "zero" in validate_embedding(np.zeros(DIMENSION), DIMENSION)
    assert "dimension" in validate_embedding(np.ones(DIMENSION + 1), DIMENSION)
    assert "non-finite" in validate_embedding([1.0, float("nan"), 0.0, 0.0], DIMENSION)
    assert "1-D" in validate_embedding(np.ones((2, 2)), DIMENSION)


@pytest.mark.asyncio
async def test_request_embedding_success(metrics):
    outcome = await request_embedding(StubEmbeddingProvider(), "Acme", DIMENSION, timeout=1.0, metrics=metrics)
    assert outcome.ok
    assert outcome.failure is None
    assert metrics.registry.get_sample_value(
        "registry_embedding_requests_total", {"purpose": "query", "outcome": "ok"}
    ) == 1.0


@pytest.mark.asyncio
async def test_request_embedding_classifies_failures(provider_error):
    failed = await request_embedding(StubEmbeddingProvider(error=provider_error), "Acme", DIMENSION)
    assert failed.failure == EmbeddingFailure.PROVIDER_UNAVAILABLE

    slow = await request_embedding(StubEmbeddingProvider(delay=0.5), "Acme", DIMENSION, timeout=0.01)
    assert slow.failure == EmbeddingFailure.PROVIDER_UNAVAILABLE
    assert "timed out" in slow.detail

    unexpected = await request_embedding(StubEmbeddingProvider(error=ConnectionError("reset")), "Acme", DIMENSION)
    assert unexpected.failure == EmbeddingFailure.PROVIDER_UNAVAILABLE
    assert "ConnectionError" in unexpected.detail

    zero = await request_embedding(StubEmbeddingProvider(vector=np.zeros(DIMENSION)), "Acme", DIMENSION)
    assert zero.failure == EmbeddingFailure.INVALID_EMBEDDING
    assert zero.vector is None


def test_generate_company_text_labels_segments():
    company = Company(
        id="1",
        name="Acme",
        description="Warehouse robots",
        tags=["robotics", "ai"],
        backing_vcs=["Seedcamp"],
        stage="Seed",
        founders=["Ada Lovelace", "Grace Hopper"],
    )
    assert generate_company_text(company) == (
        "Acme. Warehouse robots. Tags: robotics, ai. Backing VCs: Seedcamp. "
        "Stage: Seed. Founders: Ada Lovelace, Grace Hopper"
    )


def test_generate_company_text_skips_empty_segments():
    company = Company(id="1", name="Acme", description="  ", stage="")
    assert generate_company_text(company) == "Acme"
