"""PostgreSQL store for the archive corpus.

Posts and chunk embeddings live in PostgreSQL with pgvector; lexical and
trigram candidate searches use the built-in full-text search and pg_trgm.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import asyncpg

from config.database import PostgresConfig
from .embeddings import EmbeddingMismatchError
from .fusion import RetrievedChunk

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

# Failures that mean "cannot reach or log into the database" rather than a bad query
CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
    asyncpg.exceptions.InvalidAuthorizationSpecificationError,
    asyncpg.exceptions.InvalidCatalogNameError,
)


class StoreUnavailableError(Exception):
    """The database could not be reached.

    ``is_local`` tells callers whether the target was this machine, so they
    can tell "no local database running" apart from "remote database
    misconfigured".
    """

    def __init__(self, message: str, is_local: bool, hint: str):
        super().__init__(f"{message}. {hint}")
        self.is_local = is_local
        self.hint = hint


def classify_connection_error(error: BaseException, config: PostgresConfig) -> StoreUnavailableError:
    """Map a low-level connection failure onto an actionable error."""
    target = config.describe()
    refused = isinstance(error, ConnectionRefusedError) or "refused" in str(error).lower()

    if config.is_local() and refused:
        hint = (
            f"Database connection refused at {target}. Nothing is listening locally; "
            "start Postgres with pgvector, or set DATABASE_URL to a hosted database "
            "and run scripts/migrate.py and scripts/ingest_archive.py against it."
        )
        return StoreUnavailableError("Database connection refused", is_local=True, hint=hint)

    hint = (
        f"Database connection to {target} failed ({type(error).__name__}). Verify "
        "DATABASE_URL points to a reachable Postgres with the vector and pg_trgm extensions."
    )
    return StoreUnavailableError("Database connection failed", is_local=config.is_local(), hint=hint)


def format_vector(embedding: Sequence[float]) -> str:
    """pgvector text literal, e.g. ``[0.1,0.2]``."""
    return "[" + ",".join(repr(float(v)) for v in embedding) + "]"


def _row_to_chunk(row: Any) -> RetrievedChunk:
    return RetrievedChunk(
        content=row['chunk_content'],
        title=row['post_title'],
        url=row['post_url'],
        chunk_id=row['chunk_id'],
        chunk_index=row['chunk_index']
    )


class DocumentWriter:
    """Writes one post and its chunks on a connection inside an open transaction."""

    def __init__(self, conn: asyncpg.Connection, dimensions: int):
        self.conn = conn
        self.dimensions = dimensions

    async def insert_document(self, url: str, title: str, year: Optional[int], content: str) -> int:
        """Insert the post row and return its id."""
        return await self.conn.fetchval(
            """
            INSERT INTO posts (url, title, year, content)
            VALUES ($1, $2, $3, $4)
            RETURNING id
            """,
            url, title, year, content
        )

    async def insert_chunks(self, document_id: int, title: str, url: str,
                            chunks: Sequence[str], embeddings: Sequence[Sequence[float]]) -> int:
        """Insert chunks with contiguous indexes from 0; returns the number written."""
        if len(chunks) != len(embeddings):
            raise EmbeddingMismatchError(
                f"Embedding count mismatch: {len(embeddings)} != {len(chunks)}"
            )

        records = []
        for idx, (chunk, embedding) in enumerate(zip(chunks, embeddings)):
            if embedding is None or len(embedding) != self.dimensions:
                width = None if embedding is None else len(embedding)
                raise EmbeddingMismatchError(
                    f"Invalid embedding at index {idx}: length={width}, expected {self.dimensions}"
                )
            records.append((document_id, idx, title, url, chunk, format_vector(embedding)))

        await self.conn.executemany(
            """
            INSERT INTO chunks (post_id, chunk_index, post_title, url, content, embedding)
            VALUES ($1, $2, $3, $4, $5, $6::vector)
            """,
            records
        )
        return len(records)


class ArchiveStore:
    """Pooled access to the posts/chunks tables."""

    def __init__(self, config: PostgresConfig, dimensions: int = 1536):
        self.config = config
        self.dimensions = dimensions
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self):
        """Create the connection pool."""
        try:
            if self.config.dsn:
                self.pool = await asyncpg.create_pool(
                    dsn=self.config.dsn,
                    min_size=self.config.min_connections,
                    max_size=self.config.max_connections,
                    command_timeout=self.config.command_timeout
                )
            else:
                self.pool = await asyncpg.create_pool(
                    host=self.config.host,
                    port=self.config.port,
                    database=self.config.database,
                    user=self.config.user,
                    password=self.config.password,
                    min_size=self.config.min_connections,
                    max_size=self.config.max_connections,
                    command_timeout=self.config.command_timeout
                )
        except CONNECTION_ERRORS as e:
            error = classify_connection_error(e, self.config)
            logger.error(str(error))
            raise error from e
        logger.info(f"PostgreSQL connection pool initialized for {self.config.describe()}")

    async def close(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("PostgreSQL connection pool closed")

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """Pooled connection; connection-level failures become StoreUnavailableError."""
        if self.pool is None:
            raise RuntimeError("ArchiveStore not initialized. Call initialize() first.")
        try:
            conn = await self.pool.acquire()
        except CONNECTION_ERRORS as e:
            raise classify_connection_error(e, self.config) from e
        try:
            yield conn
        finally:
            await self.pool.release(conn)

    async def ensure_schema(self, schema_path: Path = SCHEMA_PATH):
        """Create extensions, tables and indexes if missing."""
        schema_sql = Path(schema_path).read_text(encoding='utf-8')
        schema_sql = schema_sql.replace("{dimensions}", str(self.dimensions))
        async with self.acquire() as conn:
            await conn.execute(schema_sql)
        logger.info(f"Schema ensured from {schema_path} (vector width {self.dimensions})")

    async def document_exists(self, url: str) -> bool:
        async with self.acquire() as conn:
            found = await conn.fetchval("SELECT 1 FROM posts WHERE url = $1", url)
        return found is not None

    async def delete_document(self, url: str) -> bool:
        """Delete a post; its chunks go with it."""
        async with self.acquire() as conn:
            deleted = await conn.fetchval("DELETE FROM posts WHERE url = $1 RETURNING id", url)
        return deleted is not None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[DocumentWriter]:
        """One connection, one transaction; rolls back if the block raises."""
        async with self.acquire() as conn:
            async with conn.transaction():
                yield DocumentWriter(conn, self.dimensions)

    async def search_vector(self, embedding: Sequence[float], limit: int) -> List[RetrievedChunk]:
        """Nearest chunks by cosine distance, closest first."""
        async with self.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT c.id AS chunk_id, c.chunk_index,
                       c.content AS chunk_content,
                       c.post_title AS post_title,
                       c.url AS post_url
                FROM chunks c
                ORDER BY c.embedding <=> $1::vector
                LIMIT $2
                """,
                format_vector(embedding), limit
            )
        return [_row_to_chunk(row) for row in rows]

    async def search_fulltext(self, query: str, limit: int) -> List[RetrievedChunk]:
        """Full-text matches ranked by ``ts_rank_cd``, best first."""
        async with self.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT c.id AS chunk_id, c.chunk_index,
                       c.content AS chunk_content,
                       c.post_title AS post_title,
                       c.url AS post_url
                FROM chunks c
                WHERE to_tsvector('english', c.content) @@ plainto_tsquery('english', $1)
                ORDER BY ts_rank_cd(to_tsvector('english', c.content),
                                    plainto_tsquery('english', $1)) DESC, c.id
                LIMIT $2
                """,
                query, limit
            )
        return [_row_to_chunk(row) for row in rows]

    async def search_trigram(self, query: str, limit: int) -> List[RetrievedChunk]:
        """Best trigram similarity among title, URL and content, best first."""
        async with self.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT c.id AS chunk_id, c.chunk_index,
                       c.content AS chunk_content,
                       c.post_title AS post_title,
                       c.url AS post_url
                FROM chunks c
                ORDER BY GREATEST(
                    similarity(c.post_title, $1),
                    similarity(c.url, $1),
                    similarity(c.content, $1)
                ) DESC, c.id
                LIMIT $2
                """,
                query, limit
            )
        return [_row_to_chunk(row) for row in rows]

    async def get_stats(self) -> Dict[str, Any]:
        """Row counts for monitoring and the CLI."""
        async with self.acquire() as conn:
            stats = await conn.fetchrow(
                """
                SELECT
                    (SELECT COUNT(*) FROM posts) AS document_count,
                    (SELECT COUNT(*) FROM chunks) AS chunk_count
                """
            )
        return dict(stats) if stats else {}
