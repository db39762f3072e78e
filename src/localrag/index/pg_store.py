"""PostgreSQL + pgvector vector store."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from localrag.index.store import (
    META_DIMENSION,
    DimensionMismatchError,
    ManagedVectorStore,
    distance_to_score,
    validate_records,
    vector_to_sql,
)
from localrag.models import Match, VectorRecord

LOGGER = logging.getLogger(__name__)


class PgVectorStore(ManagedVectorStore):
    """Shared store backed by PostgreSQL with the pgvector extension.

    Uses cosine distance (``<=>``); smaller is closer. Connections come from a
    thread-safe pool that is created on first use and shared by all callers.
    """

    backend_name = "pg"

    def __init__(self, dsn: str, *, min_connections: int = 1, max_connections: int = 5) -> None:
        if not dsn or not dsn.strip():
            raise ValueError("PgVectorStore requires a connection string (PGVECTOR_URL or DATABASE_URL)")
        self.dsn = dsn.strip()
        self.min_connections = min_connections
        self.max_connections = max_connections
        self._pool: ThreadedConnectionPool | None = None
        self._pool_lock = threading.Lock()

    def _get_pool(self) -> ThreadedConnectionPool:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadedConnectionPool(
                    self.min_connections, self.max_connections, dsn=self.dsn
                )
            return self._pool

    @contextmanager
    def transaction(self) -> Iterator:
        """Borrow a pooled connection; COMMIT on success, ROLLBACK on any failure."""
        pool = self._get_pool()
        conn = pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            pool.putconn(conn)

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None

    def init(self) -> None:
        with self.transaction() as cur:
            cur.execute("CREATE EXTENSION IF NOT EXISTS vector")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS rag_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS rag_docs (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    url TEXT
                )
                """
            )

    @staticmethod
    def _read_meta(cur, key: str) -> Optional[str]:
        cur.execute("SELECT value FROM rag_meta WHERE key = %s", (key,))
        row = cur.fetchone()
        return row["value"] if row else None

    @staticmethod
    def _write_meta(cur, key: str, value: str) -> None:
        cur.execute(
            """
            INSERT INTO rag_meta (key, value) VALUES (%s, %s)
            ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value
            """,
            (key, value),
        )

    @staticmethod
    def _has_vector_table(cur) -> bool:
        cur.execute("SELECT to_regclass('rag_vectors') IS NOT NULL AS present")
        return bool(cur.fetchone()["present"])

    def get_meta(self, key: str) -> Optional[str]:
        with self.transaction() as cur:
            return self._read_meta(cur, key)

    def set_meta(self, key: str, value: str) -> None:
        with self.transaction() as cur:
            self._write_meta(cur, key, value)

    def _ensure_vector_table(self, cur, dimension: int) -> None:
        stored = self._read_meta(cur, META_DIMENSION)
        if stored is None or int(stored) != dimension:
            LOGGER.info(
                "Embedding dimension changed (%s -> %d); recreating vectors", stored, dimension
            )
            cur.execute("DROP TABLE IF EXISTS rag_vectors")
            # Old documents have no vectors left to join against.
            cur.execute("DELETE FROM rag_docs")
            cur.execute(
                f"""
                CREATE TABLE rag_vectors (
                    id TEXT PRIMARY KEY REFERENCES rag_docs(id) ON DELETE CASCADE,
                    embedding vector({dimension})
                )
                """
            )
            self._write_meta(cur, META_DIMENSION, str(dimension))
        else:
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS rag_vectors (
                    id TEXT PRIMARY KEY REFERENCES rag_docs(id) ON DELETE CASCADE,
                    embedding vector({dimension})
                )
                """
            )

    def clear(self) -> None:
        with self.transaction() as cur:
            if self._has_vector_table(cur):
                cur.execute("DELETE FROM rag_vectors")
            cur.execute("DELETE FROM rag_docs")

    def upsert(self, records: Sequence[VectorRecord], *, dimension: int) -> None:
        dimension = validate_records(records, dimension)
        with self.transaction() as cur:
            self._ensure_vector_table(cur, dimension)
            for record in records:
                metadata = record.metadata or {}
                cur.execute(
                    """
                    INSERT INTO rag_docs (id, title, content, url)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (id) DO UPDATE SET
                        title = EXCLUDED.title,
                        content = EXCLUDED.content,
                        url = EXCLUDED.url
                    """,
                    (
                        record.id,
                        metadata.get("title") or "Untitled",
                        record.text or "",
                        metadata.get("url"),
                    ),
                )
                cur.execute(
                    """
                    INSERT INTO rag_vectors (id, embedding)
                    VALUES (%s, %s::vector)
                    ON CONFLICT (id) DO UPDATE SET embedding = EXCLUDED.embedding
                    """,
                    (record.id, vector_to_sql(record.embedding)),
                )
        LOGGER.debug("Upserted %d records (dimension %d)", len(records), dimension)

    def delete(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        with self.transaction() as cur:
            cur.execute("DELETE FROM rag_docs WHERE id = ANY(%s)", (list(ids),))

    def count(self) -> int:
        with self.transaction() as cur:
            cur.execute("SELECT COUNT(*) AS total FROM rag_docs")
            return int(cur.fetchone()["total"])

    def query(self, embedding: Sequence[float], *, top_k: int) -> List[Match]:
        with self.transaction() as cur:
            stored = self._read_meta(cur, META_DIMENSION)
            if stored is None or not self._has_vector_table(cur):
                return []
            if len(embedding) != int(stored):
                raise DimensionMismatchError(
                    f"Query dimension {len(embedding)} does not match index dimension {stored}"
                )
            cur.execute(
                """
                SELECT
                    rag_docs.id,
                    rag_docs.title,
                    rag_docs.content,
                    rag_docs.url,
                    (rag_vectors.embedding <=> %s::vector) AS distance
                FROM rag_vectors
                JOIN rag_docs ON rag_docs.id = rag_vectors.id
                ORDER BY distance ASC
                LIMIT %s
                """,
                (vector_to_sql(embedding), int(top_k)),
            )
            rows = cur.fetchall()

        return [
            Match(
                id=row["id"],
                score=distance_to_score(row["distance"]),
                raw_score=float(row["distance"]),
                raw_score_kind="distance",
                text=row["content"],
                metadata={"title": row["title"], "url": row["url"]},
            )
            for row in rows
        ]
