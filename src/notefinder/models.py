"""Core NoteFinder data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

import numpy as np


@dataclass(slots=True)
class ChunkMetadata:
    """Descriptive fields stored alongside each chunk."""

    file_name: str
    directory: str
    indexed_at: str
    char_count: int


@dataclass(slots=True)
class Chunk:
    """Contiguous slice of a document, the unit of retrieval.

    ``source_path`` is the absolute, normalized path of the document and
    ``line_start``/``line_end`` are 1-based and inclusive. ``embedding`` stays
    ``None`` until the indexer attaches a vector.
    """

    id: str
    text: str
    source_path: str
    line_start: int
    line_end: int
    chunk_ordinal: int
    metadata: ChunkMetadata
    embedding: np.ndarray | None = None


@dataclass(slots=True)
class IndexStats:
    """Summary of what the index currently holds."""

    total_chunks: int = 0
    total_files: int = 0
    file_list: List[str] = field(default_factory=list)
    db_size_mb: float = 0.0

    def as_dict(self) -> dict:
        return {
            "total_chunks": self.total_chunks,
            "total_files": self.total_files,
            "file_list": list(self.file_list),
            "db_size_mb": self.db_size_mb,
        }
