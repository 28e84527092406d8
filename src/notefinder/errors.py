"""Exception hierarchy shared by the indexing and retrieval pipeline."""

from __future__ import annotations

from pathlib import Path


class NoteFinderError(Exception):
    """Base class for every error raised by NoteFinder."""


class ChunkingError(NoteFinderError):
    """Raised when a document cannot be split into chunks."""


class EmbeddingUnavailable(NoteFinderError):
    """Raised when the embedding model cannot be loaded or is not ready yet."""


class EmbeddingFailure(NoteFinderError):
    """Raised when inference fails for a text or a batch of texts."""


class StoreConnectionError(NoteFinderError):
    """Raised when the storage location cannot be opened."""


class StoreWriteError(NoteFinderError):
    """Raised when rows cannot be written to or removed from the index."""


class StoreQueryError(NoteFinderError):
    """Raised when reading from the index fails."""


class FileReadError(NoteFinderError):
    """Raised when a source document cannot be read."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}")


class IndexingError(NoteFinderError):
    """Raised when indexing a single file fails.

    The original cause is available as ``__cause__``. When this is raised
    after the delete step, the file's previous chunks are already gone and
    the file needs to be indexed again.
    """

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Failed to index {path}: {reason}")
