"""Company store factory.

Centralizes creation of concrete ``CompanyStore`` backends so callers don't
depend on implementation details. New stores can be added without changing
call sites.
"""

from enum import Enum
from typing import Any, Dict

import structlog

from ..common.config import BaseConfig
from .base import CompanyStore
from .memory import InMemoryCompanyStore
from .pgvector import PgVectorCompanyStore

logger = structlog.get_logger("company_store.factory")


class CompanyStoreType(Enum):
    """Supported company store types."""
    PGVECTOR = "pgvector"
    MEMORY = "memory"


class CompanyStoreFactory:
    """Factory for creating company store instances."""

    @staticmethod
    def create(store_type: CompanyStoreType, config: Dict[str, Any]) -> CompanyStore:
        """Create a company store instance.

        Parameters
        - store_type: A ``CompanyStoreType`` enum value
        - config: Backend-specific parameters (e.g., DSN for pgvector)
        """

        if store_type == CompanyStoreType.PGVECTOR:
            dsn = config.get("dsn")
            if not dsn:
                raise ValueError("PgVector requires 'dsn' in config")

            return PgVectorCompanyStore(
                dsn=dsn,
                pool_size=config.get("pool_size", 10),
                command_timeout=config.get("command_timeout", 60),
                vector_dimension=config.get("vector_dimension"),
            )

        elif store_type == CompanyStoreType.MEMORY:
            return InMemoryCompanyStore(vector_dimension=config.get("vector_dimension"))

        else:
            raise ValueError(f"Unsupported company store type: {store_type}")


def create_company_store(store_type: str, config: Dict[str, Any]) -> CompanyStore:
    """Convenience function to create a company store from a type name."""
    try:
        store_type_enum = CompanyStoreType(store_type)
    except ValueError:
        raise ValueError(f"Unsupported company store type: {store_type}")
    return CompanyStoreFactory.create(store_type_enum, config)


def create_company_store_from_config(config: BaseConfig) -> CompanyStore:
    """Create the company store selected by ``registry_store_backend``."""
    store = create_company_store(
        config.registry_store_backend,
        {
            "dsn": config.registry_db_dsn,
            "pool_size": config.registry_db_pool_size,
            "command_timeout": config.registry_db_command_timeout,
            "vector_dimension": config.registry_embedding_dimension,
        },
    )
    logger.info("Created company store", backend=config.registry_store_backend)
    return store
