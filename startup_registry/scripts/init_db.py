#!/usr/bin/env python3
"""Initialize the registry database with the configured vector dimension."""

import argparse
import asyncio
import sys
from typing import List, Optional

import asyncpg
import structlog

from ..common.config import BaseConfig
from ..common.logging import configure_logging

logger = structlog.get_logger("init_db")


def build_schema_statements(vector_dimension: int) -> List[str]:
    """DDL for tables, indexes and the hybrid ranking function, in order."""
    return [
        "CREATE EXTENSION IF NOT EXISTS vector;",
        f"""
        CREATE TABLE IF NOT EXISTS companies (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name TEXT NOT NULL CHECK (btrim(name) <> ''),
            description TEXT,
            tags TEXT[] NOT NULL DEFAULT '{{}}',
            sector TEXT,
            backing_vcs TEXT[] NOT NULL DEFAULT '{{}}',
            stage TEXT,
            website TEXT,
            logo_url TEXT,
            embedding vector({vector_dimension}),
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS person (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL DEFAULT '',
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (first_name, last_name)
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS person__company (
            company_id UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            person_id UUID NOT NULL REFERENCES person(id) ON DELETE CASCADE,
            is_founder BOOLEAN NOT NULL DEFAULT FALSE,
            currently_works_here BOOLEAN NOT NULL DEFAULT TRUE,
            role TEXT NOT NULL DEFAULT '',
            position INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (company_id, person_id)
        );
        """,
        "CREATE INDEX IF NOT EXISTS idx_companies_name ON companies(name);",
        "CREATE INDEX IF NOT EXISTS idx_companies_tags ON companies USING gin(tags);",
        "CREATE INDEX IF NOT EXISTS idx_companies_embedding ON companies USING ivfflat (embedding vector_cosine_ops);",
        "CREATE INDEX IF NOT EXISTS idx_person_company_company ON person__company(company_id) WHERE is_founder;",
        # Semantic similarity dominates; lexical rank and a name hit refine the order.
        f"""
        CREATE OR REPLACE FUNCTION hybrid_search_companies(
            query_text TEXT,
            query_embedding vector({vector_dimension}),
            match_threshold FLOAT,
            match_count INT
        )
        RETURNS TABLE (id UUID, similarity FLOAT, rank_score FLOAT)
        LANGUAGE sql STABLE
        AS $$
            WITH scored AS (
                SELECT
                    c.id,
                    c.name,
                    (1 - (c.embedding <=> query_embedding))::float AS similarity,
                    ts_rank(
                        to_tsvector(
                            'english',
                            coalesce(c.name, '') || ' ' ||
                            coalesce(c.description, '') || ' ' ||
                            array_to_string(c.tags, ' ')
                        ),
                        plainto_tsquery('english', query_text)
                    )::float AS lexical_rank,
                    CASE WHEN strpos(lower(c.name), lower(query_text)) > 0 THEN 0.1 ELSE 0.0 END AS name_bonus
                FROM companies c
                WHERE c.embedding IS NOT NULL
            )
            SELECT
                s.id,
                s.similarity,
                (0.7 * s.similarity + 0.3 * s.lexical_rank + s.name_bonus)::float AS rank_score
            FROM scored s
            WHERE s.similarity > match_threshold
            ORDER BY rank_score DESC, s.name
            LIMIT match_count;
        $$;
        """,
    ]


async def init_database(dsn: str, vector_dimension: int) -> None:
    """Create the schema; every statement is idempotent."""
    logger.info("Initializing database", vector_dimension=vector_dimension)

    conn = await asyncpg.connect(dsn)
    try:
        async with conn.transaction():
            for statement in build_schema_statements(vector_dimension):
                await conn.execute(statement)
        logger.info("Database initialization completed")
    finally:
        await conn.close()


def main(argv: Optional[List[str]] = None):
    """Main function for CLI."""
    parser = argparse.ArgumentParser(description="Initialize the registry database schema")
    parser.add_argument("--dsn", help="PostgreSQL DSN (defaults to REGISTRY_DB_DSN)")
    parser.add_argument("--dimension", type=int, help="Embedding dimension (defaults to REGISTRY_EMBEDDING_DIMENSION)")

    args = parser.parse_args(argv)

    config = BaseConfig()
    configure_logging("init_db", config.registry_log_level, config.registry_log_format)

    dimension = args.dimension or config.registry_embedding_dimension
    try:
        asyncio.run(init_database(args.dsn or config.registry_db_dsn, dimension))
    except (OSError, asyncpg.PostgresError) as e:
        logger.error("Database initialization failed", error=str(e))
        print(f"Database initialization failed: {e}")
        sys.exit(1)

    print(f"Database initialized with vector dimension {dimension}")
    sys.exit(0)


if __name__ == "__main__":
    main()
