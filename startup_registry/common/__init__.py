"""Common utilities shared across the registry.

Includes:
- ``config``: Pydantic-based configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.

Import pattern:
- from startup_registry.common.config import BaseConfig
- from startup_registry.common.logging import configure_logging
"""
