"""Semantic query interface."""

from __future__ import annotations

import logging
from typing import Optional

from localrag.index.indexer import Embedder, Indexer
from localrag.index.store import VectorStore
from localrag.models import RagResponse, Snippet, Source
from localrag.utils.text import clip, normalize_answer

LOGGER = logging.getLogger(__name__)

MIN_TOP_K = 1
MAX_TOP_K = 50
DEFAULT_DISTANCE_THRESHOLD = 0.35


def clamp_top_k(value: object, default: int) -> int:
    """Clamp `value` to [1, 50]; anything that is not an integer uses `default`."""
    if isinstance(value, bool) or not isinstance(value, int):
        value = default
    return max(MIN_TOP_K, min(MAX_TOP_K, int(value)))


def is_confident(
    response: RagResponse,
    *,
    score_threshold: Optional[float] = None,
    distance_threshold: Optional[float] = DEFAULT_DISTANCE_THRESHOLD,
) -> bool:
    """Decide whether a retrieval answer is good enough to return verbatim.

    With `score_threshold` the best score must reach it. Otherwise the best
    distance must not exceed `distance_threshold`; backends that report no
    distance are accepted. The unknown answer is never confident.
    """
    if response.is_unknown:
        return False
    if score_threshold is not None:
        return response.score is not None and response.score >= score_threshold
    if distance_threshold is None or response.distance is None:
        return True
    return response.distance <= distance_threshold


class QueryEngine:
    """Turns a free-text query into a `RagResponse`."""

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        indexer: Indexer | None = None,
        *,
        top_k: int = 4,
        max_chars: int = 360,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.indexer = indexer
        self.top_k = top_k
        self.max_chars = max_chars

    def query(self, text: str, *, top_k: object = None) -> RagResponse:
        if not text or not text.strip():
            return RagResponse.unknown()

        if self.indexer is not None:
            self.indexer.ensure_indexed()

        embedding = self.embedder.embed_query(text.strip())
        limit = clamp_top_k(top_k if top_k is not None else self.top_k, self.top_k)
        matches = self.store.query(embedding, top_k=limit)
        if not matches:
            LOGGER.debug("No matches for query")
            return RagResponse.unknown()

        LOGGER.debug("Match distances: %s", [match.raw_score for match in matches])
        best = matches[0]
        return RagResponse(
            text=clip(normalize_answer(best.text), self.max_chars),
            sources=[Source(title=match.title, url=match.url) for match in matches],
            score=best.score,
            distance=best.distance,
            snippets=[
                Snippet(
                    title=match.title,
                    content=clip(normalize_answer(match.text), self.max_chars),
                    score=match.score,
                    distance=match.distance,
                    url=match.url,
                )
                for match in matches
            ],
        )
