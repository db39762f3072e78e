"""Tests for data models."""

from __future__ import annotations

from localrag.models import Chunk, Match, RagResponse, Snippet, Source


class TestChunk:
    def test_embedding_text(self) -> None:
        chunk = Chunk(id="1", title="a.md", content="Hello")

        assert chunk.embedding_text() == "a.md\n\nHello"


class TestMatch:
    def test_distance_backend(self) -> None:
        match = Match(
            id="1",
            score=0.5,
            raw_score=1.0,
            raw_score_kind="distance",
            text="t",
            metadata={"title": "a.md", "url": "docs/a.md"},
        )

        assert match.title == "a.md"
        assert match.url == "docs/a.md"
        assert match.distance == 1.0

    def test_similarity_backend_has_no_distance(self) -> None:
        match = Match(id="1", score=0.8, raw_score=0.8, raw_score_kind="similarity", text="t")

        assert match.distance is None
        assert match.title == "Untitled"
        assert match.url is None


class TestRagResponse:
    def test_unknown_sentinel(self) -> None:
        response = RagResponse.unknown()

        assert response.is_unknown
        assert response.to_dict() == {"text": "unknown", "sources": [], "score": None, "distance": None}

    def test_to_dict_omits_missing_urls(self) -> None:
        response = RagResponse(
            text="Hello",
            sources=[Source(title="a.md", url="a.md"), Source(title="b.md")],
            score=0.9,
            distance=0.1,
            snippets=[Snippet(title="b.md", content="Hi", score=0.5, distance=1.0)],
        )

        assert response.to_dict() == {
            "text": "Hello",
            "sources": [{"title": "a.md", "url": "a.md"}, {"title": "b.md"}],
            "score": 0.9,
            "distance": 0.1,
            "snippets": [{"title": "b.md", "content": "Hi", "score": 0.5, "distance": 1.0}],
        }

    def test_answer_with_unknown_text_but_sources_is_not_sentinel(self) -> None:
        response = RagResponse(text="unknown", sources=[Source(title="a.md")])

        assert not response.is_unknown
