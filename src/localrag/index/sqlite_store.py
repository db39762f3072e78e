"""SQLite + sqlite-vec vector store."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import numpy as np
import sqlite_vec

from localrag.index.store import (
    META_DIMENSION,
    DimensionMismatchError,
    ManagedVectorStore,
    distance_to_score,
    validate_records,
)
from localrag.models import Match, VectorRecord

LOGGER = logging.getLogger(__name__)


def _to_blob(embedding: Sequence[float]) -> bytes:
    return np.asarray(embedding, dtype="float32").tobytes()


class SQLiteVecStore(ManagedVectorStore):
    """Embedded, file-backed store.

    Text lives in ``rag_docs``; vectors live in the ``rag_vectors`` vec0
    virtual table whose rowid equals the autoincrement ``rag_docs.seq``, so
    matches join back to their text by identity.
    """

    backend_name = "sqlite"

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._write_lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = self._connect()
        return self._conn

    def _connect(self) -> sqlite3.Connection:
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Transactions are opened explicitly so DDL is rolled back with the rest.
        conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        LOGGER.debug("Opened %s (sqlite-vec %s)", self.db_path, self._vec_version(conn))
        return conn

    @staticmethod
    def _vec_version(conn: sqlite3.Connection) -> str:
        return conn.execute("SELECT vec_version()").fetchone()[0]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._write_lock:
            conn = self.connection
            conn.execute("BEGIN")
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def init(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rag_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rag_docs (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    url TEXT
                )
                """
            )

    def get_meta(self, key: str) -> Optional[str]:
        row = self.connection.execute("SELECT value FROM rag_meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def _set_meta(self, conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            """
            INSERT INTO rag_meta (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )

    def set_meta(self, key: str, value: str) -> None:
        with self.transaction() as conn:
            self._set_meta(conn, key, value)

    def _has_vector_table(self) -> bool:
        row = self.connection.execute(
            "SELECT 1 FROM sqlite_master WHERE name = 'rag_vectors'"
        ).fetchone()
        return row is not None

    def _ensure_vector_table(self, conn: sqlite3.Connection, dimension: int) -> None:
        stored = self.get_meta(META_DIMENSION)
        if stored is None or int(stored) != dimension:
            LOGGER.info("Embedding dimension changed (%s -> %d); recreating vectors", stored, dimension)
            conn.execute("DROP TABLE IF EXISTS rag_vectors")
            conn.execute(f"CREATE VIRTUAL TABLE rag_vectors USING vec0(embedding float[{dimension}])")
            # Old documents have no vectors left to join against.
            conn.execute("DELETE FROM rag_docs")
            self._set_meta(conn, META_DIMENSION, str(dimension))
        else:
            conn.execute(
                f"CREATE VIRTUAL TABLE IF NOT EXISTS rag_vectors USING vec0(embedding float[{dimension}])"
            )

    def clear(self) -> None:
        with self.transaction() as conn:
            if self._has_vector_table():
                conn.execute("DELETE FROM rag_vectors")
            conn.execute("DELETE FROM rag_docs")

    def upsert(self, records: Sequence[VectorRecord], *, dimension: int) -> None:
        dimension = validate_records(records, dimension)
        with self.transaction() as conn:
            self._ensure_vector_table(conn, dimension)
            for record in records:
                metadata = record.metadata or {}
                existing = conn.execute(
                    "SELECT seq FROM rag_docs WHERE id = ?", (record.id,)
                ).fetchone()
                if existing is not None:
                    conn.execute("DELETE FROM rag_vectors WHERE rowid = ?", (existing["seq"],))
                    conn.execute("DELETE FROM rag_docs WHERE seq = ?", (existing["seq"],))
                rowid = conn.execute(
                    "INSERT INTO rag_docs (id, title, content, url) VALUES (?, ?, ?, ?)",
                    (
                        record.id,
                        metadata.get("title") or "Untitled",
                        record.text or "",
                        metadata.get("url"),
                    ),
                ).lastrowid
                conn.execute(
                    "INSERT INTO rag_vectors (rowid, embedding) VALUES (?, ?)",
                    (rowid, _to_blob(record.embedding)),
                )
        LOGGER.debug("Upserted %d records (dimension %d)", len(records), dimension)

    def delete(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        placeholders = ",".join("?" for _ in ids)
        with self.transaction() as conn:
            rows = conn.execute(
                f"SELECT seq FROM rag_docs WHERE id IN ({placeholders})", tuple(ids)
            ).fetchall()
            if rows and self._has_vector_table():
                conn.executemany(
                    "DELETE FROM rag_vectors WHERE rowid = ?", [(row["seq"],) for row in rows]
                )
            conn.execute(f"DELETE FROM rag_docs WHERE id IN ({placeholders})", tuple(ids))

    def count(self) -> int:
        return int(self.connection.execute("SELECT COUNT(*) FROM rag_docs").fetchone()[0])

    def query(self, embedding: Sequence[float], *, top_k: int) -> List[Match]:
        stored = self.get_meta(META_DIMENSION)
        if stored is None or not self._has_vector_table():
            return []
        if len(embedding) != int(stored):
            raise DimensionMismatchError(
                f"Query dimension {len(embedding)} does not match index dimension {stored}"
            )

        # vec0 KNN queries need k supplied explicitly.
        rows = self.connection.execute(
            """
            SELECT
                rag_docs.id AS id,
                rag_docs.title AS title,
                rag_docs.content AS content,
                rag_docs.url AS url,
                rag_vectors.distance AS distance
            FROM rag_vectors
            JOIN rag_docs ON rag_docs.seq = rag_vectors.rowid
            WHERE rag_vectors.embedding MATCH ? AND k = ?
            ORDER BY rag_vectors.distance
            """,
            (_to_blob(embedding), int(top_k)),
        ).fetchall()

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
