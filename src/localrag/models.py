"""Core localrag data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence

UNKNOWN_ANSWER = "unknown"


@dataclass(slots=True)
class Document:
    """Parsed file content, produced by scanning the ingest directory."""

    title: str
    content: str
    source_path: Optional[str] = None


@dataclass(slots=True)
class Chunk:
    """Token-bounded slice of a document, the unit of embedding and retrieval."""

    id: str
    title: str
    content: str
    source_path: Optional[str] = None
    index: int = 0

    def embedding_text(self) -> str:
        return f"{self.title}\n\n{self.content}"


@dataclass(slots=True)
class VectorRecord:
    id: str
    embedding: Sequence[float]
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Match:
    id: str
    score: float
    raw_score: float
    raw_score_kind: Literal["distance", "similarity"]
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.metadata.get("title") or "Untitled"

    @property
    def url(self) -> Optional[str]:
        return self.metadata.get("url")

    @property
    def distance(self) -> Optional[float]:
        return self.raw_score if self.raw_score_kind == "distance" else None


@dataclass(slots=True)
class Source:
    title: str
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title}
        if self.url is not None:
            data["url"] = self.url
        return data


@dataclass(slots=True)
class Snippet:
    title: str
    content: str
    score: float
    distance: Optional[float]
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title}
        if self.url is not None:
            data["url"] = self.url
        data.update(content=self.content, score=self.score, distance=self.distance)
        return data


@dataclass(slots=True)
class RagResponse:
    """Answer handed back to the calling orchestration layer."""

    text: str
    sources: List[Source] = field(default_factory=list)
    score: Optional[float] = None
    distance: Optional[float] = None
    snippets: Optional[List[Snippet]] = None

    @classmethod
    def unknown(cls) -> "RagResponse":
        return cls(text=UNKNOWN_ANSWER)

    @property
    def is_unknown(self) -> bool:
        return self.text == UNKNOWN_ANSWER and not self.sources

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "text": self.text,
            "sources": [source.to_dict() for source in self.sources],
            "score": self.score,
            "distance": self.distance,
        }
        if self.snippets is not None:
            data["snippets"] = [snippet.to_dict() for snippet in self.snippets]
        return data
