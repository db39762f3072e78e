"""Directory indexing pipeline."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import numpy as np

from localrag.config import AppConfig
from localrag.index.store import (
    META_COUNT,
    META_SIGNATURE,
    DimensionMismatchError,
    VectorStore,
    require_managed,
)
from localrag.ingestion.loader import load_document
from localrag.models import Chunk, Document, VectorRecord
from localrag.utils.files import chunk_id, compute_signature, iter_ingest_paths
from localrag.utils.text import chunk_text

LOGGER = logging.getLogger(__name__)


class IndexBuildError(RuntimeError):
    """A rebuild could not produce a consistent index."""


class Embedder(Protocol):
    def embed(self, texts: Sequence[str]) -> np.ndarray:
        ...

    def embed_query(self, text: str) -> np.ndarray:
        ...


@dataclass(slots=True)
class IndexStats:
    rebuilt: bool = False
    signature: Optional[str] = None
    files: int = 0
    documents: int = 0
    chunks: int = 0
    skipped_files: int = 0
    dimension: Optional[int] = None


def build_chunks(document: Document, *, chunk_tokens: int, overlap: int) -> List[Chunk]:
    """Split a document into titled chunks with stable ids."""
    pieces = chunk_text(document.content, chunk_tokens=chunk_tokens, overlap=overlap)
    key = document.source_path or document.title
    multiple = len(pieces) > 1
    return [
        Chunk(
            id=chunk_id(key, index),
            title=f"{document.title} (chunk {index + 1})" if multiple else document.title,
            content=piece,
            source_path=document.source_path,
            index=index,
        )
        for index, piece in enumerate(pieces)
    ]


class Indexer:
    """Keeps the vector store in sync with the ingest directory.

    The directory is summarised by a signature of file paths, sizes and
    modification times. When it differs from the one stored with the index
    (or a rebuild is forced) every document is re-parsed, re-embedded and
    written back wholesale; otherwise the call is a no-op.

    Builds are single-flight: while one is running, other callers block and
    receive the same `IndexStats` or exception instead of starting their own.
    """

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        config: AppConfig | None = None,
        *,
        base_dir: Path | None = None,
    ) -> None:
        self.embedder = embedder
        self.store = require_managed(store, "ensure_indexed")
        self.config = config or AppConfig()
        self.base_dir = base_dir
        self._lock = threading.Lock()
        self._inflight: Future | None = None

    @property
    def ingest_dir(self) -> Path:
        return self.config.resolve_ingest_dir(self.base_dir)

    def scan(self) -> List[Path]:
        return list(
            iter_ingest_paths(
                self.ingest_dir,
                extensions=self.config.extensions,
                excludes=self.config.excludes,
                max_bytes=self.config.max_file_bytes,
            )
        )

    def ensure_indexed(self, *, force: bool = False) -> IndexStats:
        """Rebuild the index if the ingest directory changed since the last build."""
        with self._lock:
            future = self._inflight
            owner = future is None
            if owner:
                future = Future()
                self._inflight = future

        if not owner:
            LOGGER.debug("Index build already running; waiting for its result")
            return future.result()

        try:
            stats = self._build(force=force or self.config.force_reindex)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(stats)
            return stats
        finally:
            with self._lock:
                self._inflight = None

    def _build(self, *, force: bool) -> IndexStats:
        paths = self.scan()
        signature = compute_signature(paths)
        stats = IndexStats(signature=signature, files=len(paths))

        if not force and self.store.get_meta(META_SIGNATURE) == signature:
            LOGGER.debug("Index up to date (%d files)", len(paths))
            return stats

        LOGGER.info("Indexing %d files from %s", len(paths), self.ingest_dir)
        documents = self._load_documents(paths, stats)
        chunks: List[Chunk] = []
        for document in documents:
            chunks.extend(
                build_chunks(
                    document,
                    chunk_tokens=self.config.chunk_tokens,
                    overlap=self.config.chunk_overlap,
                )
            )
        stats.documents = len(documents)
        stats.chunks = len(chunks)
        stats.rebuilt = True

        if not chunks:
            LOGGER.warning("No indexable content under %s", self.ingest_dir)
            self.store.clear()
            self.store.set_meta(META_COUNT, "0")
            self.store.set_meta(META_SIGNATURE, signature)
            return stats

        embeddings = self._embed(chunks)
        dimension = int(embeddings.shape[1]) if embeddings.ndim == 2 else 0
        if dimension < 1:
            raise IndexBuildError("Embeddings provider returned empty vectors")
        stats.dimension = dimension

        records = [
            VectorRecord(
                id=chunk.id,
                embedding=embedding,
                text=chunk.content,
                metadata={"title": chunk.title, "url": chunk.source_path},
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]
        self.store.clear()
        self.store.upsert(records, dimension=dimension)
        self.store.set_meta(META_COUNT, str(len(records)))
        # Written last so an interrupted build is retried on the next call.
        self.store.set_meta(META_SIGNATURE, signature)

        LOGGER.info(
            "Indexed %d chunks from %d documents (%d skipped, dimension %d)",
            stats.chunks,
            stats.documents,
            stats.skipped_files,
            dimension,
        )
        return stats

    def _load_documents(self, paths: Sequence[Path], stats: IndexStats) -> List[Document]:
        base_dir = self.base_dir or Path.cwd()
        documents: List[Document] = []
        for path in paths:
            try:
                document = load_document(path, base_dir=base_dir)
            except Exception as exc:
                LOGGER.warning("Failed to parse %s: %s", path, exc)
                stats.skipped_files += 1
                continue
            if document is None:
                stats.skipped_files += 1
                continue
            documents.append(document)
        return documents

    def _embed(self, chunks: Sequence[Chunk]) -> np.ndarray:
        batch_size = self.config.embedding_batch
        batches = []
        for start in range(0, len(chunks), batch_size):
            batch = chunks[start : start + batch_size]
            vectors = np.asarray(self.embedder.embed([chunk.embedding_text() for chunk in batch]))
            if vectors.ndim != 2 or vectors.shape[0] != len(batch):
                raise IndexBuildError(
                    f"Expected {len(batch)} embeddings, got array of shape {vectors.shape}"
                )
            if batches and vectors.shape[1] != batches[0].shape[1]:
                raise DimensionMismatchError(
                    f"Embedding dimension changed mid-build: "
                    f"{batches[0].shape[1]} then {vectors.shape[1]}"
                )
            batches.append(vectors.astype("float32", copy=False))
            LOGGER.debug("Embedded %d/%d chunks", min(start + batch_size, len(chunks)), len(chunks))
        return np.vstack(batches)
