"""Document indexing pipeline."""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from notefinder.embedding.encoder import EmbeddingModel
from notefinder.errors import (
    EmbeddingUnavailable,
    FileReadError,
    IndexingError,
    NoteFinderError,
    StoreConnectionError,
)
from notefinder.index.storage import SQLiteVectorStore
from notefinder.utils.files import DEFAULT_EXCLUDE_DIRS, iter_matching_paths, normalize_path
from notefinder.utils.text import (
    DEFAULT_MAX_CHUNK_SIZE,
    DEFAULT_MIN_CHUNK_SIZE,
    chunk_document,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_PATTERN = "**/*.md"
DEFAULT_INDEX_PATTERNS = (
    "memory/**/*.md",
    "diaries/**/*.md",
    ".lane/plans/**/*.md",
    "*.md",
)

_UNAVAILABLE = (EmbeddingUnavailable, StoreConnectionError)


def _is_unavailable(exc: BaseException) -> bool:
    """True when a failure means the model or store is down, not one bad file."""
    return isinstance(exc, _UNAVAILABLE) or isinstance(exc.__cause__, _UNAVAILABLE)


@dataclass(slots=True)
class DirectoryIndexResult:
    indexed: int = 0
    failed: list[str] = field(default_factory=list)
    processed_files: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ReindexResult:
    indexed: int = 0
    failed: list[str] = field(default_factory=list)
    files_count: int = 0
    cancelled: bool = False

    def merge(self, result: DirectoryIndexResult) -> None:
        self.indexed += result.indexed
        self.failed.extend(result.failed)
        self.files_count += len(result.processed_files)


class Indexer:
    """Coordinates chunking, embedding and persistence of documents.

    Each file is replaced wholesale: its old chunks are deleted before the new
    ones are written. Work on a given path is serialized by a per-path lock.
    """

    def __init__(
        self,
        embedder: EmbeddingModel,
        store: SQLiteVectorStore,
        *,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE,
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
        index_patterns: Sequence[str] = DEFAULT_INDEX_PATTERNS,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.max_chunk_size = max_chunk_size
        self.min_chunk_size = min_chunk_size
        self.exclude_dirs = tuple(exclude_dirs)
        self.index_patterns = tuple(index_patterns)
        # Entries disappear once no caller holds the lock for that path.
        self._path_locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._registry_lock = threading.Lock()

    def _lock_for(self, normalized: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._path_locks.get(normalized)
            if lock is None:
                lock = threading.Lock()
                self._path_locks[normalized] = lock
            return lock

    def index_file(self, path: Path | str) -> int:
        """(Re)index one file and return the number of chunks written.

        Raises `IndexingError` wrapping the underlying failure. A failure after
        the delete step leaves the file without chunks until it is indexed again.
        """
        normalized = normalize_path(path)
        with self._lock_for(normalized):
            try:
                content = self._read(normalized)
                self.store.delete_by_path(normalized)

                chunks = chunk_document(
                    content,
                    normalized,
                    max_chunk_size=self.max_chunk_size,
                    min_chunk_size=self.min_chunk_size,
                )
                if not chunks:
                    LOGGER.warning("No chunks created for %s", normalized)
                    return 0

                embeddings = self.embedder.embed_batch([chunk.text for chunk in chunks])
                if len(embeddings) != len(chunks):
                    raise ValueError("Embeddings and chunks length mismatch")
                for chunk, vector in zip(chunks, embeddings):
                    chunk.embedding = vector

                self.store.add_chunks(chunks)
            except (NoteFinderError, OSError, ValueError) as exc:
                raise IndexingError(normalized, str(exc)) from exc

        return len(chunks)

    @staticmethod
    def _read(path: str) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FileReadError(path, str(exc)) from exc

    def index_directory(
        self,
        directory: Path | str,
        pattern: str = DEFAULT_PATTERN,
        *,
        cancel: threading.Event | None = None,
    ) -> DirectoryIndexResult:
        """Index every file under ``directory`` matching ``pattern``.

        A failing file is logged and recorded in ``failed``; the pass continues.
        """
        root = Path(normalize_path(directory))
        files = list(iter_matching_paths(root, pattern, exclude_dirs=self.exclude_dirs))
        LOGGER.info("Found %d files to index in %s (pattern: %s)", len(files), root, pattern)

        result = DirectoryIndexResult()
        for path in files:
            if cancel is not None and cancel.is_set():
                LOGGER.warning("Indexing of %s cancelled", root)
                break
            try:
                count = self.index_file(path)
            except IndexingError as exc:
                if _is_unavailable(exc):
                    raise
                LOGGER.warning("Failed to index %s: %s", path, exc.reason)
                result.failed.append(str(path))
                continue
            result.indexed += count
            result.processed_files.append(str(path))
            LOGGER.info("Indexed %s (%d chunks)", path, count)
        return result

    def reindex_all(
        self,
        root: Path | str,
        *,
        cancel: threading.Event | None = None,
    ) -> ReindexResult:
        """Clear the index and rebuild it from the default patterns under ``root``.

        Embedding and store errors that are not tied to one file (for example a
        model that cannot load) propagate; other failures are logged per pattern.
        """
        LOGGER.info("Clearing existing index...")
        self.store.drop_table()

        result = ReindexResult()
        for pattern in self.index_patterns:
            if cancel is not None and cancel.is_set():
                result.cancelled = True
                break
            try:
                result.merge(self.index_directory(root, pattern, cancel=cancel))
            except (NoteFinderError, OSError, ValueError) as exc:
                if _is_unavailable(exc):
                    raise
                LOGGER.error("Failed to index pattern %s: %s", pattern, exc)
        else:
            result.cancelled = cancel is not None and cancel.is_set()

        LOGGER.info(
            "Reindex complete: %d chunks from %d files, %d failed",
            result.indexed,
            result.files_count,
            len(result.failed),
        )
        return result
