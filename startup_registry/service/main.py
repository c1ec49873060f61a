"""Registry service main application."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..common.config import SearchConfig
from ..common.logging import configure_logging
from ..company_store.base import CompanyStore
from ..company_store.factory import create_company_store_from_config
from ..embedding.maintenance import EmbeddingMaintenance
from ..embedding.provider import EmbeddingProvider, create_embedding_provider
from ..registry.company_manager import CompanyManager
from ..search.hybrid.resolver import SearchResolver
from .api.routes import router as api_router
from .runtime.metrics import MetricsCollector, get_metrics_collector

logger = structlog.get_logger("registry_service")

SERVICE_NAME = "registry-service"
API_PREFIX = "/api"


def endpoint_label(request: Request) -> str:
    """Templated path of the matched route, with the API mount prefix.

    Depending on the framework release, routes included under a prefix report
    their template with or without that prefix.
    """
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    if template is None:
        return request.url.path
    path = request.url.path
    under_api = path == API_PREFIX or path.startswith(API_PREFIX + "/")
    if under_api and not template.startswith(API_PREFIX):
        return API_PREFIX + template
    return template


def create_app(
    config: Optional[SearchConfig] = None,
    store: Optional[CompanyStore] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
    metrics_collector: Optional[MetricsCollector] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Any of the collaborators can be injected; those left out are built from
    configuration at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        service_config = config or SearchConfig()
        configure_logging(SERVICE_NAME, service_config.registry_log_level, service_config.registry_log_format)
        logger.info("Starting registry service", env=service_config.registry_env)

        owned_store = store is None
        owned_provider = embedding_provider is None
        company_store = store or create_company_store_from_config(service_config)
        provider = embedding_provider or create_embedding_provider(service_config)
        collector = metrics_collector or get_metrics_collector(SERVICE_NAME)
        dimension = service_config.registry_embedding_dimension
        timeout = service_config.registry_embedding_timeout_seconds

        app.state.config = service_config
        app.state.store = company_store
        app.state.embedding_provider = provider
        app.state.metrics_collector = collector
        app.state.resolver = SearchResolver(
            company_store,
            provider,
            dimension,
            match_threshold=service_config.registry_search_match_threshold,
            match_count=service_config.registry_search_match_count,
            embedding_timeout=timeout,
            metrics=collector,
        )
        app.state.company_manager = CompanyManager(
            company_store,
            provider,
            dimension,
            embedding_timeout=timeout,
            metrics=collector,
        )
        app.state.maintenance = EmbeddingMaintenance(
            company_store,
            provider,
            dimension,
            timeout=timeout,
            metrics=collector,
        )

        logger.info("Registry service started successfully")

        yield

        # Shutdown
        logger.info("Shutting down registry service")
        if owned_provider:
            await provider.close()
        if owned_store:
            await company_store.close()
        logger.info("Registry service shutdown complete")

    app = FastAPI(
        title="Startup Registry",
        description="Company registry with hybrid semantic and keyword search",
        version=__version__,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=API_PREFIX)

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time header to responses."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics for HTTP requests."""
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.error("Unhandled request error", path=request.url.path, error=str(e))
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"}
            )

        duration = time.time() - start_time

        # Route template keeps label cardinality bounded
        endpoint = endpoint_label(request)
        if hasattr(request.app.state, "metrics_collector"):
            request.app.state.metrics_collector.record_http_request(
                method=request.method,
                endpoint=endpoint,
                status=status_code,
                duration=duration
            )

        return response

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        try:
            store_health = await request.app.state.store.health_check()
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "service": SERVICE_NAME, "error": str(e)}
            )

        embedding_stats = request.app.state.embedding_provider.get_stats()
        if store_health:
            return {"status": "healthy", "service": SERVICE_NAME, "embedding": embedding_stats}
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "service": SERVICE_NAME, "embedding": embedding_stats}
        )

    @app.get("/metrics")
    async def metrics(request: Request):
        """Prometheus metrics endpoint."""
        if hasattr(request.app.state, "metrics_collector"):
            metrics_data = request.app.state.metrics_collector.get_metrics()
            return Response(content=metrics_data, media_type="text/plain")
        return Response(content="# No metrics available\n", media_type="text/plain")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "status": "running",
            "endpoints": {
                "health": "/health",
                "metrics": "/metrics",
                "companies": "/api/companies",
                "embeddings": "/api/companies/embeddings"
            }
        }

    return app


app = create_app()


def main():
    config = SearchConfig()
    uvicorn.run(
        "startup_registry.service.main:app",
        host="0.0.0.0",
        port=config.registry_search_port,
        log_level=config.registry_log_level.lower()
    )


if __name__ == "__main__":
    main()
