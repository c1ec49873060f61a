"""PgVector implementation of the company store.

Companies live in a ``companies`` table with a pgvector ``embedding`` column.
Founders are derived from the ``person``/``person__company`` link tables and
projected into ``Company.founders``; nothing stores a denormalized copy.

Ranking is delegated to the ``hybrid_search_companies`` SQL function created
by ``startup_registry.scripts.init_db``; this module only consumes its order.

Connection management
- A shared asyncpg pool is created on demand and reused across calls
- Queries are funneled through ``_execute_query`` for uniform error handling
"""

import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import asyncpg
import numpy as np
import structlog
from asyncpg import Connection, Pool
from pgvector.asyncpg import register_vector

from .base import (
    CompanyNotFoundError,
    CompanyStore,
    CompanyStoreConnectionError,
    CompanyStoreQueryError,
    RankingQueryError,
    ensure_vector_dimension,
)
from .models import (
    Company,
    CompanyCreate,
    CompanySearchResult,
    UPDATABLE_FIELDS,
    split_person_name,
)

logger = structlog.get_logger("company_store.pgvector")

# Columns written directly on ``companies``; founders go through the link table.
_COLUMN_FIELDS = tuple(field for field in UPDATABLE_FIELDS if field != "founders")

_COMPANY_COLUMNS = """
    c.id, c.name, c.description, c.tags, c.sector, c.backing_vcs, c.stage,
    c.website, c.logo_url, c.created_at, c.updated_at,
    COALESCE((
        SELECT array_agg(btrim(p.first_name || ' ' || p.last_name) ORDER BY pc.position)
        FROM person__company pc
        JOIN person p ON p.id = pc.person_id
        WHERE pc.company_id = c.id AND pc.is_founder
    ), '{}'::text[]) AS founders
"""

_KEYWORD_PREDICATE = """
    (
        c.name ILIKE $1 ESCAPE '\\'
        OR c.description ILIKE $1 ESCAPE '\\'
        OR c.sector ILIKE $1 ESCAPE '\\'
        OR c.stage ILIKE $1 ESCAPE '\\'
        OR EXISTS (SELECT 1 FROM unnest(c.tags) AS t(label) WHERE lower(t.label) = lower($2))
        OR EXISTS (SELECT 1 FROM unnest(c.backing_vcs) AS v(label) WHERE lower(v.label) = lower($2))
        OR EXISTS (
            SELECT 1
            FROM person__company pc
            JOIN person p ON p.id = pc.person_id
            WHERE pc.company_id = c.id
              AND pc.is_founder
              AND lower(btrim(p.first_name || ' ' || p.last_name)) = lower($2)
        )
    )
"""


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user input is matched literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_id(company_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(company_id))
    except ValueError:
        return None


def _row_to_company(row: asyncpg.Record) -> Company:
    return Company(**{key: row[key] for key in Company.model_fields})


class PgVectorCompanyStore(CompanyStore):
    """PgVector implementation of the company store."""

    def __init__(
        self,
        dsn: str,
        pool_size: int = 10,
        command_timeout: int = 60,
        vector_dimension: Optional[int] = None,
    ):
        """Configure a PgVector-backed company store.

        Parameters
        - dsn: PostgreSQL DSN including database and credentials
        - pool_size: Max size of asyncpg connection pool
        - command_timeout: Seconds to allow per DB command
        - vector_dimension: Expected dimensionality for stored vectors
        """
        self.dsn = dsn
        self.pool_size = pool_size
        self.command_timeout = command_timeout
        self.vector_dimension = vector_dimension
        self._pool: Optional[Pool] = None

    async def _init_connection(self, conn: Connection) -> None:
        """Register the pgvector codec for asyncpg connections."""
        await register_vector(conn)

    async def _get_pool(self) -> Pool:
        """Get or create connection pool.

        Lazily initializes an asyncpg pool so callers don't pay startup cost
        unless/until they make a call that requires the database.
        """
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=self.pool_size,
                    command_timeout=self.command_timeout,
                    init=self._init_connection,
                )
                logger.info("Created company store connection pool", pool_size=self.pool_size)
            except Exception as e:
                logger.error("Failed to create company store connection pool", error=str(e))
                raise CompanyStoreConnectionError(f"Failed to create connection pool: {e}")

        return self._pool

    async def _execute_query(
        self,
        query: str,
        *args: Any,
        fetch: bool = False,
        fetch_one: bool = False
    ) -> Any:
        """Execute a query with error handling.

        The ``fetch``/``fetch_one`` flags control how results are retrieved.
        Driver failures are wrapped in ``CompanyStoreQueryError``.
        """
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                if fetch_one:
                    result = await conn.fetchrow(query, *args)
                elif fetch:
                    result = await conn.fetch(query, *args)
                else:
                    result = await conn.execute(query, *args)
                return result
        except Exception as e:
            logger.error("Query execution failed", query=query, error=str(e))
            raise CompanyStoreQueryError(f"Query failed: {e}")

    async def _run_in_transaction(self, work: Callable[[Connection], Awaitable[Any]]) -> Any:
        """Run ``work(conn)`` inside a single transaction."""
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    return await work(conn)
        except CompanyNotFoundError:
            raise
        except Exception as e:
            logger.error("Transaction failed", error=str(e))
            raise CompanyStoreQueryError(f"Transaction failed: {e}")

    async def list_by_tags(self, tags: Sequence[str]) -> List[Company]:
        query = f"""
            SELECT {_COMPANY_COLUMNS}
            FROM companies c
            WHERE c.tags @> $1::text[]
            ORDER BY c.name
        """
        rows = await self._execute_query(query, list(tags), fetch=True)
        logger.debug("Tag search completed", tags=list(tags), results_count=len(rows))
        return [_row_to_company(row) for row in rows]

    async def hybrid_search(
        self,
        query_text: str,
        query_embedding: np.ndarray,
        match_threshold: float,
        match_count: int
    ) -> List[CompanySearchResult]:
        """Call ``hybrid_search_companies`` and keep the order it returns."""
        try:
            vector_array = ensure_vector_dimension(query_embedding, self.vector_dimension)
            query = f"""
                SELECT {_COMPANY_COLUMNS}, h.similarity, h.rank_score
                FROM hybrid_search_companies($1, $2, $3, $4)
                     WITH ORDINALITY AS h(id, similarity, rank_score, ordinal)
                JOIN companies c ON c.id = h.id
                ORDER BY h.ordinal
            """
            rows = await self._execute_query(
                query,
                query_text,
                vector_array,
                float(match_threshold),
                int(match_count),
                fetch=True
            )
        except Exception as e:
            raise RankingQueryError(f"Hybrid ranking failed: {e}")

        results = []
        for row in rows:
            fields = {key: row[key] for key in Company.model_fields}
            results.append(CompanySearchResult(
                **fields,
                similarity=float(row["similarity"] or 0.0),
                rank_score=float(row["rank_score"] or 0.0),
            ))

        logger.debug(
            "Hybrid ranking completed",
            query_vector_dim=len(vector_array),
            match_threshold=match_threshold,
            match_count=match_count,
            results_count=len(results)
        )
        return results

    async def keyword_search(self, query_text: str, tags: Sequence[str]) -> List[Company]:
        query = f"""
            SELECT {_COMPANY_COLUMNS}
            FROM companies c
            WHERE {_KEYWORD_PREDICATE}
              AND c.tags @> $3::text[]
            ORDER BY c.name
        """
        pattern = f"%{escape_like(query_text)}%"
        rows = await self._execute_query(query, pattern, query_text, list(tags), fetch=True)
        logger.debug("Keyword search completed", query=query_text, results_count=len(rows))
        return [_row_to_company(row) for row in rows]

    async def _fetch_company(self, conn: Connection, company_id: uuid.UUID) -> Optional[Company]:
        row = await conn.fetchrow(
            f"SELECT {_COMPANY_COLUMNS} FROM companies c WHERE c.id = $1",
            company_id
        )
        return _row_to_company(row) if row else None

    async def _replace_founders(
        self,
        conn: Connection,
        company_id: uuid.UUID,
        founders: Sequence[str]
    ) -> None:
        """Replace the company's founder links, reusing persons by name."""
        await conn.execute(
            "DELETE FROM person__company WHERE company_id = $1 AND is_founder",
            company_id
        )

        for position, full_name in enumerate(founders):
            first_name, last_name = split_person_name(full_name)
            if not first_name:
                continue

            person_id = await conn.fetchval(
                """
                INSERT INTO person (first_name, last_name)
                VALUES ($1, $2)
                ON CONFLICT (first_name, last_name)
                DO UPDATE SET first_name = EXCLUDED.first_name
                RETURNING id
                """,
                first_name,
                last_name
            )

            await conn.execute(
                """
                INSERT INTO person__company
                    (company_id, person_id, is_founder, currently_works_here, role, position)
                VALUES ($1, $2, TRUE, TRUE, '', $3)
                ON CONFLICT (company_id, person_id)
                DO UPDATE SET is_founder = TRUE, position = EXCLUDED.position
                """,
                company_id,
                person_id,
                position
            )

    async def insert(self, company: CompanyCreate) -> Company:
        async def work(conn: Connection) -> Company:
            company_id = await conn.fetchval(
                """
                INSERT INTO companies
                    (name, description, tags, sector, backing_vcs, stage, website, logo_url)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING id
                """,
                company.name,
                company.description,
                company.tags,
                company.sector,
                company.backing_vcs,
                company.stage,
                company.website,
                company.logo_url
            )
            await self._replace_founders(conn, company_id, company.founders)
            return await self._fetch_company(conn, company_id)

        created = await self._run_in_transaction(work)
        logger.info("Inserted company", company_id=created.id, name=created.name)
        return created

    async def update_by_id(self, company_id: str, changes: Dict[str, Any]) -> Company:
        parsed_id = _parse_id(company_id)
        if parsed_id is None:
            raise CompanyNotFoundError(company_id)

        columns = [field for field in _COLUMN_FIELDS if field in changes]
        assignments = [f"{column} = ${index + 2}" for index, column in enumerate(columns)]
        assignments.append("updated_at = CURRENT_TIMESTAMP")
        params = [changes[column] for column in columns]

        async def work(conn: Connection) -> Company:
            updated_id = await conn.fetchval(
                f"UPDATE companies SET {', '.join(assignments)} WHERE id = $1 RETURNING id",
                parsed_id,
                *params
            )
            if updated_id is None:
                raise CompanyNotFoundError(company_id)

            if "founders" in changes:
                await self._replace_founders(conn, parsed_id, changes["founders"] or [])

            return await self._fetch_company(conn, parsed_id)

        updated = await self._run_in_transaction(work)
        logger.info("Updated company", company_id=company_id, fields=sorted(changes))
        return updated

    async def delete_by_id(self, company_id: str) -> bool:
        parsed_id = _parse_id(company_id)
        if parsed_id is None:
            return False

        result = await self._execute_query("DELETE FROM companies WHERE id = $1", parsed_id)

        # asyncpg returns the command tag, e.g. "DELETE 1"
        deleted = result.split()[-1] == "1"
        if deleted:
            logger.info("Deleted company", company_id=company_id)
        else:
            logger.warning("Company not found for deletion", company_id=company_id)
        return deleted

    async def get_by_id(self, company_id: str) -> Optional[Company]:
        parsed_id = _parse_id(company_id)
        if parsed_id is None:
            return None

        row = await self._execute_query(
            f"SELECT {_COMPANY_COLUMNS} FROM companies c WHERE c.id = $1",
            parsed_id,
            fetch_one=True
        )
        return _row_to_company(row) if row else None

    async def list_all(self, limit: Optional[int] = None, offset: int = 0) -> List[Company]:
        query = f"SELECT {_COMPANY_COLUMNS} FROM companies c ORDER BY c.name OFFSET $1"
        args: List[Any] = [offset]
        if limit is not None:
            query += " LIMIT $2"
            args.append(limit)

        rows = await self._execute_query(query, *args, fetch=True)
        return [_row_to_company(row) for row in rows]

    async def list_missing_embeddings(self) -> List[Company]:
        rows = await self._execute_query(
            f"""
            SELECT {_COMPANY_COLUMNS}
            FROM companies c
            WHERE c.embedding IS NULL
            ORDER BY c.name
            """,
            fetch=True
        )
        return [_row_to_company(row) for row in rows]

    async def update_embedding(self, company_id: str, vector: np.ndarray) -> bool:
        parsed_id = _parse_id(company_id)
        if parsed_id is None:
            return False

        vector_array = ensure_vector_dimension(vector, self.vector_dimension)
        result = await self._execute_query(
            "UPDATE companies SET embedding = $2 WHERE id = $1",
            parsed_id,
            vector_array
        )
        updated = result.split()[-1] == "1"
        if updated:
            logger.info("Stored company embedding", company_id=company_id)
        else:
            logger.warning("Company not found for embedding update", company_id=company_id)
        return updated

    async def get_embedding(self, company_id: str) -> Optional[np.ndarray]:
        parsed_id = _parse_id(company_id)
        if parsed_id is None:
            return None

        row = await self._execute_query(
            "SELECT embedding FROM companies WHERE id = $1",
            parsed_id,
            fetch_one=True
        )
        if row is None or row["embedding"] is None:
            return None
        return np.asarray(row["embedding"], dtype=np.float32)

    async def health_check(self) -> bool:
        try:
            await self._execute_query("SELECT 1", fetch_one=True)
            return True
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Closed company store connection pool")
