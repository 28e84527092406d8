"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Iterable, Iterator

DEFAULT_EXCLUDE_DIRS = ("node_modules", "build", ".git")


def normalize_path(path: Path | str) -> str:
    """Return the absolute, normalized string form used as a chunk's source key."""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def chunk_id(source_path: Path | str, ordinal: int) -> str:
    """Derive the stable identifier of a chunk from its document and position."""
    digest = hashlib.sha256(f"{normalize_path(source_path)}-{ordinal}".encode("utf-8"))
    return digest.hexdigest()[:16]


def iter_matching_paths(
    root: Path,
    pattern: str,
    *,
    exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
) -> Iterator[Path]:
    """Yield files under ``root`` matching a glob pattern, in sorted order.

    Files that live below any directory named in ``exclude_dirs`` are skipped.
    """
    root = Path(root)
    if not root.is_dir():
        return
    excluded = set(exclude_dirs)
    for item in sorted(root.glob(pattern)):
        if not item.is_file():
            continue
        parents = item.relative_to(root).parts[:-1]
        if excluded.intersection(parents):
            continue
        yield item.resolve()


def directory_size(path: Path) -> int:
    """Total size in bytes of every file below ``path``; 0 if it does not exist."""
    path = Path(path)
    if path.is_file():
        return path.stat().st_size
    if not path.is_dir():
        return 0
    total = 0
    for child in path.rglob("*"):
        try:
            if child.is_file():
                total += child.stat().st_size
        except OSError:
            # File vanished between listing and stat (WAL checkpoint)
            continue
    return total
