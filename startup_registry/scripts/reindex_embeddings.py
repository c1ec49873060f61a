#!/usr/bin/env python3
"""Backfill or regenerate company embeddings."""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from ..common.config import EmbeddingConfig
from ..common.logging import configure_logging
from ..company_store.factory import create_company_store_from_config
from ..embedding.maintenance import (
    BACKFILL,
    REGENERATE,
    EmbeddingMaintenance,
    MaintenanceError,
    MaintenanceReport,
)
from ..embedding.provider import create_embedding_provider

logger = structlog.get_logger("reindex_embeddings")


async def run_maintenance(mode: str, config: Optional[EmbeddingConfig] = None) -> MaintenanceReport:
    """Run one maintenance pass against the configured store and provider."""
    if not config:
        config = EmbeddingConfig()

    store = create_company_store_from_config(config)
    provider = create_embedding_provider(config)
    maintenance = EmbeddingMaintenance(
        store,
        provider,
        config.registry_embedding_dimension,
        timeout=config.registry_embedding_timeout_seconds,
    )

    try:
        if mode == REGENERATE:
            return await maintenance.regenerate_all_embeddings()
        return await maintenance.backfill_embeddings()
    finally:
        await provider.close()
        await store.close()


def main(argv: Optional[List[str]] = None):
    """Main function for CLI."""
    parser = argparse.ArgumentParser(description="Maintain company embeddings")
    parser.add_argument(
        "mode",
        choices=[BACKFILL, REGENERATE],
        help="backfill: only companies without embeddings; regenerate: all companies"
    )

    args = parser.parse_args(argv)

    config = EmbeddingConfig()
    configure_logging("reindex_embeddings", config.registry_log_level, config.registry_log_format)

    try:
        report = asyncio.run(run_maintenance(args.mode, config))
    except MaintenanceError as e:
        logger.error("Embedding maintenance failed", mode=args.mode, error=str(e))
        print(f"Embedding {args.mode} failed: {e}")
        sys.exit(1)

    print(report.message)
    if report.failed_ids:
        print(f"Failed companies ({len(report.failed_ids)}): {', '.join(report.failed_ids)}")
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
