"""Startup registry: company search and administration.

Subpackages:
- ``startup_registry.common``: configuration, logging, and metrics.
- ``startup_registry.company_store``: company persistence interface and backends.
- ``startup_registry.embedding``: embedding provider client and maintenance jobs.
- ``startup_registry.search``: hybrid search resolver with keyword fallback.
- ``startup_registry.registry``: validated company administration.
- ``startup_registry.service``: FastAPI application exposing the above.

Notes:
- Keep transport concerns in ``service``; everything below it is plain async code.
"""

__version__ = "0.1.0"
