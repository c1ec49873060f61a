"""Embedding generation and maintenance.

- ``provider``: HTTP embedding client, outcome type, and validation
- ``company_text``: text synthesized from a company record
- ``maintenance``: backfill and regeneration jobs
- ``circuit_breaker`` / ``retry_handler``: resilience for provider calls
"""
