"""Shared fixtures for the localrag test suite."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import List, Sequence

import numpy as np
import pytest

from localrag.config import AppConfig
from localrag.index.sqlite_store import SQLiteVecStore


class WordEncoding:
    """Whitespace tokenizer standing in for tiktoken so tests run offline."""

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}
        self._words: List[str] = []

    def encode(self, text: str) -> List[int]:
        tokens = []
        for word in text.split():
            if word not in self._ids:
                self._ids[word] = len(self._words)
                self._words.append(word)
            tokens.append(self._ids[word])
        return tokens

    def decode(self, tokens: Sequence[int]) -> str:
        return " ".join(self._words[token] for token in tokens)


class FakeEmbedder:
    """Deterministic bag-of-words embedder that records every call."""

    def __init__(self, dimension: int = 16) -> None:
        self.dimension = dimension
        self.calls: List[List[str]] = []

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        texts = list(texts)
        self.calls.append(texts)
        rows = np.zeros((len(texts), self.dimension), dtype="float32")
        for row, text in enumerate(texts):
            for word in text.lower().split():
                bucket = hashlib.md5(word.encode("utf-8")).digest()[0] % self.dimension
                rows[row, bucket] += 1.0
        return rows

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed([text])[0]

    @property
    def texts_embedded(self) -> int:
        return sum(len(batch) for batch in self.calls)


@pytest.fixture(autouse=True)
def word_encoding(monkeypatch: pytest.MonkeyPatch) -> WordEncoding:
    encoding = WordEncoding()
    monkeypatch.setattr("localrag.utils.text.get_encoding", lambda name="cl100k_base": encoding)
    return encoding


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def ingest_dir(tmp_path: Path) -> Path:
    path = tmp_path / "rag-docs"
    path.mkdir()
    return path


@pytest.fixture
def config(tmp_path: Path, ingest_dir: Path) -> AppConfig:
    return AppConfig(
        ingest_dir=ingest_dir,
        db_path=tmp_path / "local-rag-vec.db",
        chunk_tokens=400,
        chunk_overlap=60,
        embedding_base_url="http://localhost:8080/v1",
    )


@pytest.fixture
def sqlite_store(tmp_path: Path):
    store = SQLiteVecStore(tmp_path / "vectors.db")
    store.init()
    yield store
    store.close()
