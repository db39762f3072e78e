"""Embeddings over an OpenAI-compatible HTTP endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence
from urllib.parse import urlparse

import httpx
import numpy as np

from localrag.config import DEFAULT_BASE_URL, DEFAULT_EMBEDDING_MODEL, AppConfig

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


class EmbeddingError(RuntimeError):
    """The embeddings provider failed or returned an unusable payload."""


def is_loopback_url(url: str) -> bool:
    return (urlparse(url).hostname or "") in LOOPBACK_HOSTS


@dataclass(slots=True)
class EmbeddingConfig:
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_EMBEDDING_MODEL
    api_key: str | None = field(default=None, repr=False)
    timeout: float = 30.0

    @classmethod
    def from_app_config(cls, config: AppConfig) -> "EmbeddingConfig":
        return cls(
            base_url=config.embedding_base_url,
            model=config.embedding_model,
            api_key=config.embedding_api_key,
            timeout=config.embedding_timeout,
        )


class EmbeddingClient:
    """Thin client for `POST {base_url}/embeddings`.

    Vectors come back in input order as a float32 matrix. Any transport
    error, non-2xx status or short payload raises `EmbeddingError`; there
    are no partial results and no retries.
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or EmbeddingConfig()
        self._endpoint = f"{self.config.base_url.rstrip('/')}/embeddings"
        self._client = httpx.Client(timeout=self.config.timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "EmbeddingClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if is_loopback_url(self.config.base_url):
            return headers
        if not self.config.api_key:
            raise EmbeddingError(
                "Missing embeddings API key (RAG_EMBEDDING_API_KEY, QWEN_API_KEY "
                "or DASHSCOPE_API_KEY) for a non-local endpoint."
            )
        headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return one float32 embedding row per input text."""
        inputs = list(texts)
        if not inputs:
            return np.empty((0, 0), dtype="float32")

        headers = self._headers()
        try:
            response = self._client.post(
                self._endpoint,
                headers=headers,
                json={"model": self.config.model, "input": inputs},
            )
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        if response.is_error:
            raise EmbeddingError(
                f"Embedding request failed: {response.status_code} {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise EmbeddingError("Embedding response is not valid JSON.") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            raise EmbeddingError("Embedding request returned no data.")
        if len(data) != len(inputs):
            raise EmbeddingError(
                f"Embedding request returned {len(data)} vectors for {len(inputs)} inputs."
            )

        rows = [item.get("embedding") or [] for item in data]
        width = len(rows[0])
        if any(len(row) != width for row in rows):
            raise EmbeddingError("Embedding response contains vectors of unequal length.")

        logger.debug("Embedded %d texts (dimension %d)", len(inputs), width)
        return np.asarray(rows, dtype="float32").reshape(len(rows), width)

    def embed_query(self, text: str) -> np.ndarray:
        """Convenience wrapper for single-query embedding."""
        return self.embed([text])[0]
