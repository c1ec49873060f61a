"""Embedding providers.

``EmbeddingProvider.embed`` turns text into a vector and raises
``EmbeddingProviderError`` on any network, provider, or response-shape
failure. Callers on the search path go through ``request_embedding``, which
bounds the call with a timeout, validates the vector, and reports the result
as an ``EmbeddingOutcome`` instead of raising.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx
import numpy as np
import structlog

from ..common.config import EmbeddingConfig
from ..common.metrics import MetricsCollector
from .circuit_breaker import CircuitBreaker, CircuitBreakerError
from .retry_handler import RetryConfig, RetryHandler

logger = structlog.get_logger("embedding.provider")


class EmbeddingProviderError(Exception):
    """The embedding provider could not produce a vector."""
    pass


class EmbeddingProvider(ABC):
    """Abstract text embedding provider."""

    @abstractmethod
    async def embed(self, text: str) -> np.ndarray:
        """Embed ``text``. Raises ``EmbeddingProviderError`` on failure."""

    async def close(self) -> None:
        """Release client resources."""

    def get_stats(self) -> Dict[str, Any]:
        return {}


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Client for an OpenAI-compatible ``/embeddings`` endpoint.

    Each request runs through a circuit breaker, and retryable failures are
    retried with exponential backoff. An open breaker fails fast without
    retrying.
    """

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        model: str,
        dimension: int,
        max_text_chars: int = 8000,
        request_timeout: float = 30.0,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.dimension = dimension
        self.max_text_chars = max_text_chars
        self.request_timeout = request_timeout
        self.retry_handler = RetryHandler(
            retry_config or RetryConfig(retryable_exceptions=(EmbeddingProviderError,))
        )
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            name="embedding_provider",
            expected_exception=EmbeddingProviderError,
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.request_timeout,
                transport=self._transport,
            )
        return self._client

    async def _post_embedding(self, text: str) -> np.ndarray:
        """POST one embedding request and parse ``data[0].embedding``."""
        try:
            response = await self._get_client().post(
                f"{self.api_url}/embeddings",
                json={"model": self.model, "input": text, "dimensions": self.dimension},
            )
        except httpx.HTTPError as e:
            raise EmbeddingProviderError(f"Embedding request failed: {e}") from e

        if response.status_code != 200:
            raise EmbeddingProviderError(
                f"Embedding provider returned status {response.status_code}"
            )

        try:
            embedding = response.json()["data"][0]["embedding"]
            return np.asarray(embedding, dtype=np.float32)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingProviderError(f"Malformed embedding response: {e}") from e

    async def embed(self, text: str) -> np.ndarray:
        if len(text) > self.max_text_chars:
            logger.debug(
                "Truncating embedding input",
                original_chars=len(text),
                max_chars=self.max_text_chars,
            )
            text = text[:self.max_text_chars]

        try:
            return await self.retry_handler.execute_with_retry(
                lambda: self.circuit_breaker.call(self._post_embedding, text),
                operation_name="embedding_provider_request",
            )
        except CircuitBreakerError as e:
            raise EmbeddingProviderError(str(e)) from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def get_stats(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "dimension": self.dimension,
            "circuit_breaker": self.circuit_breaker.get_stats(),
        }


def create_embedding_provider(config: EmbeddingConfig) -> OpenAIEmbeddingProvider:
    """Build the HTTP embedding provider from configuration."""
    if not config.registry_embedding_api_key:
        logger.warning("No embedding API key configured; requests will be unauthenticated")

    return OpenAIEmbeddingProvider(
        api_url=config.registry_embedding_api_url,
        api_key=config.registry_embedding_api_key,
        model=config.registry_embedding_model,
        dimension=config.registry_embedding_dimension,
        max_text_chars=config.registry_embedding_max_text_chars,
        retry_config=RetryConfig(
            max_attempts=config.registry_embedding_retry_attempts,
            base_delay=config.registry_embedding_retry_base_delay,
            max_delay=config.registry_embedding_retry_max_delay,
            retryable_exceptions=(EmbeddingProviderError,),
        ),
        circuit_breaker=CircuitBreaker(
            name="embedding_provider",
            failure_threshold=config.registry_embedding_breaker_failure_threshold,
            recovery_timeout=config.registry_embedding_breaker_recovery_timeout,
            expected_exception=EmbeddingProviderError,
        ),
    )


class EmbeddingFailure(Enum):
    """Why an embedding request produced no usable vector."""
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    INVALID_EMBEDDING = "invalid_embedding"


@dataclass(frozen=True)
class EmbeddingOutcome:
    """Either a validated vector or the reason there is none."""

    vector: Optional[np.ndarray] = None
    failure: Optional[EmbeddingFailure] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None and self.vector is not None

    @classmethod
    def success(cls, vector: np.ndarray) -> "EmbeddingOutcome":
        return cls(vector=vector)

    @classmethod
    def failed(cls, failure: EmbeddingFailure, detail: str = "") -> "EmbeddingOutcome":
        return cls(failure=failure, detail=detail)


def validate_embedding(vector: Any, dimension: int) -> Optional[str]:
    """Return a reason string when ``vector`` is unusable, else ``None``.

    A usable vector is one-dimensional, has ``dimension`` components, is
    finite everywhere, and has at least one non-zero component.
    """
    try:
        array = np.asarray(vector, dtype=np.float32)
    except (TypeError, ValueError):
        return "not numeric"

    if array.ndim != 1:
        return f"expected a 1-D vector, got {array.ndim} dimensions"
    if array.shape[0] != dimension:
        return f"expected dimension {dimension}, got {array.shape[0]}"
    if not np.all(np.isfinite(array)):
        return "contains non-finite values"
    if not np.any(array):
        return "all components are zero"
    return None


async def request_embedding(
    provider: EmbeddingProvider,
    text: str,
    dimension: int,
    timeout: Optional[float] = None,
    purpose: str = "query",
    metrics: Optional[MetricsCollector] = None,
) -> EmbeddingOutcome:
    """Request an embedding and classify the result.

    Any provider error or timeout becomes ``provider_unavailable``; vectors
    failing ``validate_embedding`` become ``invalid_embedding``.
    """
    start_time = time.time()

    try:
        if timeout is not None:
            vector = await asyncio.wait_for(provider.embed(text), timeout=timeout)
        else:
            vector = await provider.embed(text)
    except asyncio.TimeoutError:
        outcome = EmbeddingOutcome.failed(
            EmbeddingFailure.PROVIDER_UNAVAILABLE,
            f"timed out after {timeout}s",
        )
    except EmbeddingProviderError as e:
        outcome = EmbeddingOutcome.failed(EmbeddingFailure.PROVIDER_UNAVAILABLE, str(e))
    except Exception as e:
        logger.exception("Unexpected embedding provider error", purpose=purpose)
        outcome = EmbeddingOutcome.failed(
            EmbeddingFailure.PROVIDER_UNAVAILABLE,
            f"{type(e).__name__}: {e}",
        )
    else:
        reason = validate_embedding(vector, dimension)
        if reason is None:
            outcome = EmbeddingOutcome.success(np.asarray(vector, dtype=np.float32))
        else:
            outcome = EmbeddingOutcome.failed(EmbeddingFailure.INVALID_EMBEDDING, reason)

    if metrics is not None:
        metrics.record_embedding(
            purpose=purpose,
            outcome="ok" if outcome.ok else outcome.failure.value,
            duration=time.time() - start_time,
        )

    if not outcome.ok:
        logger.warning(
            "Embedding request failed",
            purpose=purpose,
            failure=outcome.failure.value,
            detail=outcome.detail,
        )

    return outcome
