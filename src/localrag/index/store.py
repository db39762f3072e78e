"""Vector store interfaces shared by every backend."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from localrag.models import Match, VectorRecord

META_SIGNATURE = "ingest_signature"
META_DIMENSION = "embedding_dim"
META_COUNT = "ingest_count"


class DimensionMismatchError(ValueError):
    """An embedding does not match the dimension of the store."""


class UnsupportedOperationError(NotImplementedError):
    """A backend was asked for an operation it does not provide."""


def distance_to_score(distance: float) -> float:
    """Map a distance onto (0, 1]: larger is more relevant, 0 for non-finite input."""
    try:
        value = float(distance)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return 1.0 / (1.0 + max(0.0, value))


def validate_records(records: Sequence[VectorRecord], dimension: Optional[int]) -> int:
    """Check every record against `dimension` before anything is written."""
    if not dimension or dimension < 1:
        raise ValueError("upsert requires a positive embedding dimension")
    for record in records:
        if len(record.embedding) != dimension:
            raise DimensionMismatchError(
                f"Embedding dimension mismatch for {record.id}: "
                f"expected {dimension}, got {len(record.embedding)}"
            )
    return int(dimension)


def vector_to_sql(embedding: Sequence[float]) -> str:
    """Text form accepted by both sqlite-vec and pgvector, e.g. ``[0.1,0.2]``."""
    return "[" + ",".join(repr(float(value)) for value in embedding) + "]"


class VectorStore(ABC):
    """Minimal contract every vector backend implements."""

    backend_name = "abstract"

    @abstractmethod
    def init(self) -> None:
        """Create metadata and document tables if absent. Idempotent."""

    @abstractmethod
    def upsert(self, records: Sequence[VectorRecord], *, dimension: int) -> None:
        """Write `records`, recreating vector storage if `dimension` changed."""

    @abstractmethod
    def query(self, embedding: Sequence[float], *, top_k: int) -> List[Match]:
        """Return up to `top_k` records, most relevant first."""

    @abstractmethod
    def delete(self, ids: Sequence[str]) -> None:
        """Remove records by id."""

    def close(self) -> None:
        """Release connections or file handles."""

    def __enter__(self) -> "VectorStore":
        self.init()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ManagedVectorStore(VectorStore):
    """Vector store that also supports full rebuilds and index metadata."""

    @abstractmethod
    def clear(self) -> None:
        """Delete all document and vector rows, keeping metadata."""

    @abstractmethod
    def get_meta(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_meta(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""

    def stats(self) -> Dict[str, Any]:
        dimension = self.get_meta(META_DIMENSION)
        return {
            "backend": self.backend_name,
            "records": self.count(),
            "dimension": int(dimension) if dimension else None,
            "signature": self.get_meta(META_SIGNATURE),
        }


def require_managed(store: VectorStore, operation: str) -> ManagedVectorStore:
    if not isinstance(store, ManagedVectorStore):
        raise UnsupportedOperationError(
            f"{type(store).__name__} does not support {operation!r}; "
            "a ManagedVectorStore is required"
        )
    return store
