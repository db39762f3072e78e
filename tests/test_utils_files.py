"""Tests for file utilities."""

from __future__ import annotations

import os
from pathlib import Path

from localrag.utils.files import EMPTY_SIGNATURE, chunk_id, compute_signature, iter_ingest_paths


def _write(path: Path, content: str = "text") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestIterIngestPaths:
    """Test iter_ingest_paths function."""

    def test_filters_by_extension(self, tmp_path: Path) -> None:
        _write(tmp_path / "a.md")
        _write(tmp_path / "b.TXT")
        _write(tmp_path / "c.png")

        paths = list(iter_ingest_paths(tmp_path, extensions=[".md", ".txt"]))

        assert [p.name for p in paths] == ["a.md", "b.TXT"]

    def test_recurses_in_sorted_order(self, tmp_path: Path) -> None:
        _write(tmp_path / "z.md")
        _write(tmp_path / "sub" / "b.md")
        _write(tmp_path / "sub" / "a.md")

        paths = list(iter_ingest_paths(tmp_path, extensions=[".md"]))

        assert [p.relative_to(tmp_path).as_posix() for p in paths] == [
            "sub/a.md",
            "sub/b.md",
            "z.md",
        ]

    def test_skips_excluded_names(self, tmp_path: Path) -> None:
        _write(tmp_path / "node_modules" / "dep.md")
        _write(tmp_path / "docs" / ".git" / "HEAD.md")
        _write(tmp_path / "docs" / "keep.md")

        paths = list(iter_ingest_paths(tmp_path, extensions=[".md"], excludes=["node_modules", ".git"]))

        assert [p.name for p in paths] == ["keep.md"]

    def test_skips_large_files(self, tmp_path: Path) -> None:
        _write(tmp_path / "small.md", "x" * 10)
        _write(tmp_path / "large.md", "x" * 100)

        paths = list(iter_ingest_paths(tmp_path, extensions=[".md"], max_bytes=50))

        assert [p.name for p in paths] == ["small.md"]

    def test_missing_directory_yields_nothing(self, tmp_path: Path) -> None:
        assert list(iter_ingest_paths(tmp_path / "missing", extensions=[".md"])) == []


class TestComputeSignature:
    """Test compute_signature function."""

    def test_empty_set(self) -> None:
        assert compute_signature([]) == EMPTY_SIGNATURE

    def test_stable_for_unchanged_files(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "a.md")

        assert compute_signature([path]) == compute_signature([path])

    def test_changes_with_mtime(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "a.md")
        before = compute_signature([path])

        stat = path.stat()
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

        assert compute_signature([path]) != before

    def test_changes_with_size(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "a.md", "one")
        stat = path.stat()
        before = compute_signature([path])

        path.write_text("one two", encoding="utf-8")
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns))

        assert compute_signature([path]) != before

    def test_changes_with_file_set(self, tmp_path: Path) -> None:
        a = _write(tmp_path / "a.md")
        b = _write(tmp_path / "b.md")

        assert compute_signature([a]) != compute_signature([a, b])


class TestChunkId:
    def test_stable(self) -> None:
        assert chunk_id("docs/a.md", 0) == chunk_id("docs/a.md", 0)

    def test_distinct_per_index_and_key(self) -> None:
        ids = {chunk_id("a.md", 0), chunk_id("a.md", 1), chunk_id("b.md", 0)}

        assert len(ids) == 3
        assert all(len(value) == 32 for value in ids)
