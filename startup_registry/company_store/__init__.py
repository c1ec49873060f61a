"""Company store adapters and models.

Primary components:
- ``models``: ``Company`` and related pydantic models.
- ``base``: abstract ``CompanyStore`` interface and common exceptions.
- ``pgvector``: PostgreSQL/pgvector implementation of the interface.
- ``memory``: in-process implementation for local development and tests.
- ``factory``: helpers to construct a store from typed config.

Guidance:
- Prefer constructing via ``factory.create_company_store_from_config`` so
  callers remain decoupled from specific backends.
"""
