"""Process-wide entry point wiring configuration, store, indexer and queries."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from localrag.config import AppConfig
from localrag.embedding.client import EmbeddingClient, EmbeddingConfig
from localrag.index.indexer import Embedder, Indexer, IndexStats
from localrag.index.pg_store import PgVectorStore
from localrag.index.search import QueryEngine
from localrag.index.sqlite_store import SQLiteVecStore
from localrag.index.store import META_COUNT, VectorStore, require_managed
from localrag.models import RagResponse

LOGGER = logging.getLogger(__name__)


def create_store(config: AppConfig, *, base_dir: Path | None = None) -> VectorStore:
    """Instantiate the backend selected by `config.backend`."""
    if config.backend == "sqlite":
        return SQLiteVecStore(config.resolve_db_path(base_dir))
    if config.backend == "pg":
        if not config.pg_dsn:
            raise ValueError("The pg backend requires PGVECTOR_URL or DATABASE_URL")
        return PgVectorStore(config.pg_dsn)
    raise ValueError(f"Unknown vector backend {config.backend!r}")


class RagService:
    """Owns one store, one embedder and one single-flight indexer per process.

    Everything is created lazily on first use and reused afterwards; callers
    share the instance instead of building their own stores.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        embedder: Embedder | None = None,
        store: VectorStore | None = None,
        base_dir: Path | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.base_dir = base_dir
        self._embedder = embedder
        self._owns_embedder = embedder is None
        self._store = store
        self._indexer: Indexer | None = None
        self._engine: QueryEngine | None = None
        self._lock = threading.Lock()
        self._wiring_lock = threading.Lock()

    @property
    def store(self) -> VectorStore:
        with self._lock:
            if self._store is None:
                self._store = create_store(self.config, base_dir=self.base_dir)
                LOGGER.debug("Created %s vector store", self._store.backend_name)
            return self._store

    @property
    def embedder(self) -> Embedder:
        with self._lock:
            if self._embedder is None:
                self._embedder = EmbeddingClient(EmbeddingConfig.from_app_config(self.config))
            return self._embedder

    @property
    def indexer(self) -> Indexer:
        with self._wiring_lock:
            if self._indexer is None:
                store = self.store
                store.init()
                self._indexer = Indexer(self.embedder, store, self.config, base_dir=self.base_dir)
            return self._indexer

    @property
    def engine(self) -> QueryEngine:
        if self._engine is None:
            indexer = self.indexer
            self._engine = QueryEngine(
                self.embedder,
                self.store,
                indexer,
                top_k=self.config.top_k,
                max_chars=self.config.max_answer_chars,
            )
        return self._engine

    def ensure_indexed(self, *, force: bool = False) -> IndexStats:
        return self.indexer.ensure_indexed(force=force)

    def query(self, text: str, *, top_k: Optional[int] = None) -> RagResponse:
        return self.engine.query(text, top_k=top_k)

    def stats(self) -> Dict[str, Any]:
        store = require_managed(self.store, "stats")
        store.init()
        data = store.stats()
        count = store.get_meta(META_COUNT)
        data["ingest_count"] = int(count) if count is not None else None
        return data

    def close(self) -> None:
        with self._lock:
            if self._store is not None:
                self._store.close()
                self._store = None
            if self._owns_embedder and isinstance(self._embedder, EmbeddingClient):
                self._embedder.close()
                self._embedder = None
            self._indexer = None
            self._engine = None

    def __enter__(self) -> "RagService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
