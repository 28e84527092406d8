"""Caller-facing operations shared by the CLI and the web API.

Every method returns a `ToolResponse`; failures come back as an error
response carrying a readable message instead of an exception.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from notefinder.config import AppConfig
from notefinder.embedding.encoder import EmbeddingConfig, EmbeddingModel
from notefinder.errors import NoteFinderError
from notefinder.index.indexer import Indexer
from notefinder.index.search import SearchResult, Searcher, format_results
from notefinder.index.storage import SQLiteVectorStore
from notefinder.models import IndexStats

LOGGER = logging.getLogger(__name__)

_HANDLED_ERRORS = (NoteFinderError, OSError, ValueError)
_BYTES_PER_MB = 1024 * 1024


@dataclass(slots=True)
class ToolResponse:
    text: str
    is_error: bool = False
    data: dict[str, Any] = field(default_factory=dict)


def result_to_dict(result: SearchResult) -> dict[str, Any]:
    chunk = result.chunk
    return {
        "id": chunk.id,
        "text": chunk.text,
        "source_path": chunk.source_path,
        "line_start": chunk.line_start,
        "line_end": chunk.line_end,
        "chunk_ordinal": chunk.chunk_ordinal,
        "file_name": chunk.metadata.file_name,
        "directory": chunk.metadata.directory,
        "indexed_at": chunk.metadata.indexed_at,
        "char_count": chunk.metadata.char_count,
        "score": result.score,
        "distance": result.distance,
    }


class SearchService:
    """Owns the embedding model, the store and the indexing/search pipeline."""

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        embedder: EmbeddingModel | None = None,
        store: SQLiteVectorStore | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.embedder = embedder or EmbeddingModel(
            EmbeddingConfig(model_name=self.config.model_name, batch_size=self.config.batch_size)
        )
        self.store = store or SQLiteVectorStore(self.config.resolve_db_path())
        self.indexer = Indexer(
            self.embedder,
            self.store,
            max_chunk_size=self.config.max_chunk_size,
            min_chunk_size=self.config.min_chunk_size,
            exclude_dirs=self.config.exclude_dirs,
            index_patterns=self.config.index_patterns,
        )
        self.searcher = Searcher(
            self.embedder,
            self.store,
            overfetch_multiplier=self.config.overfetch_multiplier,
            keyword_boost=self.config.keyword_boost,
            min_keyword_length=self.config.min_keyword_length,
        )

    def __enter__(self) -> "SearchService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        LOGGER.debug("Closing index at %s", self.store.location)
        self.store.close()

    def _resolve(self, path: str | Path) -> Path:
        return (self.config.workspace_root / Path(path).expanduser()).resolve()

    def _run(self, operation: str, action: Callable[[], ToolResponse]) -> ToolResponse:
        try:
            return action()
        except _HANDLED_ERRORS as exc:
            LOGGER.error("%s failed: %s", operation, exc)
            return ToolResponse(
                text=f"Error: {exc}",
                is_error=True,
                data={"error_type": type(exc).__name__},
            )

    def _clamp_limit(self, limit: Any) -> int:
        try:
            value = int(limit) if limit is not None else 0
        except (TypeError, ValueError):
            value = 0
        # 0 means "not given", like a missing limit
        if not value:
            value = self.config.default_limit
        return min(max(value, 1), self.config.max_limit)

    def search(self, query: Any, limit: Any = None, hybrid: bool = True) -> ToolResponse:
        def action() -> ToolResponse:
            if not isinstance(query, str) or not query.strip():
                raise ValueError("Query parameter is required and must be a non-empty string")
            count = self._clamp_limit(limit)
            LOGGER.info('Searching for: "%s" (limit: %d, hybrid: %s)', query, count, hybrid)
            results = self.searcher.search(query, limit=count, hybrid=bool(hybrid))
            return ToolResponse(
                text=format_results(results),
                data={"results": [result_to_dict(result) for result in results]},
            )

        return self._run("search", action)

    def index_file(self, path: Any) -> ToolResponse:
        def action() -> ToolResponse:
            if not isinstance(path, (str, Path)) or not str(path).strip():
                raise ValueError("Path parameter is required and must be a string")
            resolved = self._resolve(path)
            LOGGER.info("Indexing file: %s", resolved)
            count = self.indexer.index_file(resolved)
            return ToolResponse(
                text=f"Successfully indexed {resolved}\nCreated {count} chunks",
                data={"path": str(resolved), "chunks": count},
            )

        return self._run("index_file", action)

    def index_directory(self, path: Any, pattern: str | None = None) -> ToolResponse:
        def action() -> ToolResponse:
            if not isinstance(path, (str, Path)) or not str(path).strip():
                raise ValueError("Path parameter is required and must be a string")
            resolved = self._resolve(path)
            if not resolved.is_dir():
                raise ValueError(f"Not a directory: {resolved}")
            glob = pattern or self.config.default_pattern
            LOGGER.info("Indexing directory: %s (pattern: %s)", resolved, glob)
            result = self.indexer.index_directory(resolved, glob)

            message = f"Indexed {result.indexed} chunks from {resolved}\n"
            if result.failed:
                message += f"\nFailed to index {len(result.failed)} files:\n"
                message += "\n".join(f"  - {failed}" for failed in result.failed)
            return ToolResponse(
                text=message,
                data={"indexed": result.indexed, "failed": list(result.failed)},
            )

        return self._run("index_directory", action)

    def reindex_all(
        self,
        workspace_root: str | Path | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ToolResponse:
        def action() -> ToolResponse:
            root = Path(workspace_root or self.config.workspace_root).expanduser().resolve()
            LOGGER.info("Reindexing all documents from %s...", root)
            result = self.indexer.reindex_all(root, cancel=cancel)

            message = "Reindex cancelled.\n\n" if result.cancelled else "Reindex complete!\n\n"
            message += f"Total chunks indexed: {result.indexed}\n"
            message += f"Files processed: {result.files_count}\n"
            if result.failed:
                message += f"\nFailed files: {len(result.failed)}\n"
                message += "\n".join(f"  - {failed}" for failed in result.failed)
            return ToolResponse(
                text=message,
                data={
                    "indexed": result.indexed,
                    "failed": list(result.failed),
                    "files_count": result.files_count,
                    "cancelled": result.cancelled,
                },
            )

        return self._run("reindex_all", action)

    def collect_stats(self) -> IndexStats:
        """Current index statistics; raises on store errors."""
        if not self.store.has_table():
            return IndexStats()
        files = self.store.list_files()
        size_mb = self.store.estimate_storage_bytes() / _BYTES_PER_MB
        return IndexStats(
            total_chunks=self.store.count_rows(),
            total_files=len(files),
            file_list=files,
            db_size_mb=round(size_mb, 2),
        )

    def get_stats(self) -> ToolResponse:
        def action() -> ToolResponse:
            stats = self.collect_stats()
            message = (
                "Index Statistics:\n\n"
                f"Total chunks: {stats.total_chunks}\n"
                f"Total files: {stats.total_files}\n"
                f"Database size: {stats.db_size_mb} MB\n\n"
                "Indexed files:\n"
                + "\n".join(f"  - {path}" for path in stats.file_list)
            )
            return ToolResponse(text=message, data=stats.as_dict())

        return self._run("get_stats", action)
