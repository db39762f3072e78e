"""End-to-end tests for RagService over the SQLite backend."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from localrag.config import AppConfig
from localrag.embedding.client import EmbeddingClient
from localrag.index.pg_store import PgVectorStore
from localrag.index.sqlite_store import SQLiteVecStore
from localrag.index.store import DimensionMismatchError
from localrag.service import RagService, create_store

from conftest import FakeEmbedder


@pytest.fixture
def service(config: AppConfig, embedder: FakeEmbedder, tmp_path: Path):
    with RagService(config, embedder=embedder, base_dir=tmp_path) as rag:
        yield rag


class TestCreateStore:
    def test_sqlite(self, tmp_path: Path) -> None:
        store = create_store(AppConfig(db_path=Path("x.db")), base_dir=tmp_path)

        assert isinstance(store, SQLiteVecStore)
        assert store.db_path == tmp_path / "x.db"

    def test_pg(self) -> None:
        store = create_store(AppConfig(backend="pg", pg_dsn="postgresql://localhost/rag"))

        assert isinstance(store, PgVectorStore)

    def test_pg_requires_dsn(self) -> None:
        with pytest.raises(ValueError, match="PGVECTOR_URL"):
            create_store(AppConfig(backend="pg"))

    def test_unknown_backend(self) -> None:
        config = AppConfig()
        config.backend = "faiss"

        with pytest.raises(ValueError, match="faiss"):
            create_store(config)


class TestRagService:
    def test_store_created_once(self, service: RagService) -> None:
        assert service.store is service.store
        assert service.indexer is service.indexer

    def test_default_embedder_is_http_client(self, config: AppConfig) -> None:
        with RagService(config) as rag:
            assert isinstance(rag.embedder, EmbeddingClient)

    def test_query_finds_document(self, service: RagService, ingest_dir: Path) -> None:
        """A single small document is returned as the answer."""
        (ingest_dir / "a.md").write_text("# Title\nHello world", encoding="utf-8")

        service.ensure_indexed()
        response = service.query("hello")

        assert len(response.sources) == 1
        assert response.sources[0].title == "a.md"
        assert "Hello world" in response.text
        assert response.score is not None
        assert response.distance is not None
        assert response.to_dict()["snippets"][0]["title"] == "a.md"

    def test_query_indexes_lazily(self, service: RagService, ingest_dir: Path) -> None:
        (ingest_dir / "a.md").write_text("Lazy indexing works", encoding="utf-8")

        response = service.query("lazy")

        assert "Lazy indexing works" in response.text

    def test_replaced_file_is_unreachable(
        self, service: RagService, ingest_dir: Path, embedder: FakeEmbedder
    ) -> None:
        """After swapping a.md for b.md only b.md remains in the store."""
        a_text = "Alpha content about apples"
        (ingest_dir / "a.md").write_text(a_text, encoding="utf-8")
        service.ensure_indexed()

        (ingest_dir / "a.md").unlink()
        (ingest_dir / "b.md").write_text("Beta content about bananas", encoding="utf-8")
        stats = service.ensure_indexed()

        assert stats.rebuilt is True
        matches = service.store.query(embedder.embed_query(f"a.md\n\n{a_text}"), top_k=50)
        assert [m.title for m in matches] == ["b.md"]
        assert all(a_text not in m.text for m in matches)

    def test_every_record_has_stored_dimension(
        self, service: RagService, ingest_dir: Path
    ) -> None:
        for name in ("a.md", "b.md", "c.md"):
            (ingest_dir / name).write_text(f"text of {name}", encoding="utf-8")

        service.ensure_indexed()
        stats = service.stats()
        rows = service.store.connection.execute(
            "SELECT vec_length(embedding) FROM rag_vectors"
        ).fetchall()

        assert stats["records"] == 3
        assert stats["ingest_count"] == 3
        assert {row[0] for row in rows} == {stats["dimension"]}

    def test_embedder_dimension_change_rebuilds(
        self, config: AppConfig, ingest_dir: Path, tmp_path: Path
    ) -> None:
        (ingest_dir / "a.md").write_text("Hello world", encoding="utf-8")
        with RagService(config, embedder=FakeEmbedder(dimension=8), base_dir=tmp_path) as rag:
            rag.ensure_indexed()

        with RagService(config, embedder=FakeEmbedder(dimension=4), base_dir=tmp_path) as rag:
            with pytest.raises(DimensionMismatchError):
                rag.query("hello")
            rag.ensure_indexed(force=True)
            response = rag.query("hello")
            assert rag.stats()["dimension"] == 4

        assert response.sources[0].title == "a.md"

    def test_empty_query_skips_embedding(self, service: RagService, embedder: FakeEmbedder) -> None:
        response = service.query("   ")

        assert response.is_unknown
        assert embedder.calls == []

    def test_stats_on_fresh_store(self, service: RagService) -> None:
        assert service.stats() == {
            "backend": "sqlite",
            "records": 0,
            "dimension": None,
            "signature": None,
            "ingest_count": None,
        }

    def test_close_releases_store(self, config: AppConfig, embedder: FakeEmbedder) -> None:
        rag = RagService(config, embedder=embedder)
        store = rag.store

        with patch.object(store, "close", wraps=store.close) as close:
            rag.close()

        close.assert_called_once()
        assert rag.store is not store
        rag.close()
