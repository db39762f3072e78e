"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Collection, Iterator, Sequence

EMPTY_SIGNATURE = "empty"


def iter_ingest_paths(
    root: Path,
    *,
    extensions: Collection[str],
    excludes: Collection[str] = (),
    max_bytes: int | None = None,
) -> Iterator[Path]:
    """Yield eligible files under `root` in a stable, sorted order.

    Directories and files whose name is in `excludes` are skipped, as are
    files with a non-allowed extension or larger than `max_bytes`.
    """
    allowed = {ext.lower() for ext in extensions}
    excluded = set(excludes)
    try:
        entries = sorted(os.scandir(root), key=lambda entry: entry.name)
    except FileNotFoundError:
        return

    for entry in entries:
        if entry.name in excluded:
            continue
        path = Path(entry.path)
        if entry.is_dir():
            yield from iter_ingest_paths(
                path, extensions=allowed, excludes=excluded, max_bytes=max_bytes
            )
        elif entry.is_file() and path.suffix.lower() in allowed:
            if max_bytes is not None and entry.stat().st_size > max_bytes:
                continue
            yield path


def compute_signature(paths: Sequence[Path]) -> str:
    """Digest of each file's path, byte size and mtime, in the given order."""
    if not paths:
        return EMPTY_SIGNATURE
    sha = hashlib.sha256()
    for path in paths:
        stat = path.stat()
        sha.update(str(path).encode("utf-8"))
        sha.update(str(stat.st_size).encode("ascii"))
        sha.update(str(stat.st_mtime_ns).encode("ascii"))
    return sha.hexdigest()


def chunk_id(key: str, index: int) -> str:
    """Stable identifier for the `index`-th chunk of the document keyed by `key`."""
    return hashlib.sha256(f"{key}\x00{index}".encode("utf-8")).hexdigest()[:32]
