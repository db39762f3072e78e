"""Text helpers including token-aware chunking."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, List

import tiktoken

DEFAULT_ENCODING = "cl100k_base"

_FENCED_CODE = re.compile(r"```.*?```", re.DOTALL)
_MARKUP_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_HEADING = re.compile(r"^#{1,6}\s+")
_HEADING_MARKER = re.compile(r"^#{1,6}\s+", re.MULTILINE)


@lru_cache(maxsize=4)
def get_encoding(name: str = DEFAULT_ENCODING) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


def clean_text(text: str) -> str:
    """Drop fenced code blocks and markup tags, collapse whitespace."""
    text = _FENCED_CODE.sub(" ", text)
    text = _MARKUP_TAG.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def split_sections(text: str) -> List[str]:
    """Split raw text into sections at headings and blank lines."""
    sections: List[str] = []
    buffer: List[str] = []

    def flush() -> None:
        if buffer:
            section = "\n".join(buffer).strip()
            if section:
                sections.append(section)
            buffer.clear()

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            flush()
            continue
        if _HEADING.match(stripped):
            flush()
        buffer.append(line)
    flush()
    return sections


def chunk_by_tokens(
    text: str, *, chunk_tokens: int, overlap: int, encoding: str = DEFAULT_ENCODING
) -> List[str]:
    """Slide a `chunk_tokens` window over the BPE tokens of the cleaned text."""
    if chunk_tokens < 1:
        raise ValueError("chunk_tokens must be at least 1")
    clean = clean_text(text)
    if not clean:
        return []

    enc = get_encoding(encoding)
    tokens = enc.encode(clean)
    step = max(1, chunk_tokens - overlap)
    chunks: List[str] = []
    for start in range(0, len(tokens), step):
        window = enc.decode(tokens[start : start + chunk_tokens]).strip()
        if window:
            chunks.append(window)
    return chunks


def chunk_text(
    text: str, *, chunk_tokens: int = 400, overlap: int = 60, encoding: str = DEFAULT_ENCODING
) -> List[str]:
    """Split a document into structure-aligned, overlapping token chunks."""
    chunks: List[str] = []
    for section in split_sections(text):
        chunks.extend(
            chunk_by_tokens(section, chunk_tokens=chunk_tokens, overlap=overlap, encoding=encoding)
        )
    return chunks


def normalize_answer(text: str) -> str:
    """Remove leading heading markers and collapse whitespace."""
    return _WHITESPACE.sub(" ", _HEADING_MARKER.sub("", text)).strip()


def clip(text: str, max_chars: int = 240) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars].rstrip()}…"


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())
