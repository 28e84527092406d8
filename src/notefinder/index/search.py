"""Hybrid semantic + keyword search interface."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Sequence

from notefinder.embedding.encoder import EmbeddingModel
from notefinder.index.storage import SQLiteVectorStore
from notefinder.models import Chunk, ChunkMetadata

LOGGER = logging.getLogger(__name__)

DEFAULT_OVERFETCH_MULTIPLIER = 2
DEFAULT_KEYWORD_BOOST = 0.2
DEFAULT_MIN_KEYWORD_LENGTH = 4
PREVIEW_CHARS = 150


@dataclass(slots=True)
class SearchResult:
    chunk: Chunk
    score: float
    distance: float


def extract_keywords(query: str, *, min_length: int = DEFAULT_MIN_KEYWORD_LENGTH) -> List[str]:
    """Lowercased whitespace-delimited query words of at least ``min_length`` chars.

    Repeated words are kept, so each occurrence earns its own boost.
    """
    return [word for word in query.lower().split() if len(word) >= min_length]


def apply_keyword_boost(
    results: Sequence[SearchResult],
    keywords: Sequence[str],
    *,
    boost: float = DEFAULT_KEYWORD_BOOST,
) -> List[SearchResult]:
    """Add ``boost`` per keyword found in a chunk's text, cap at 1.0 and re-rank.

    The sort is stable, so equal scores keep their semantic order.
    """
    boosted = []
    for result in results:
        text = result.chunk.text.lower()
        matches = sum(1 for keyword in keywords if keyword in text)
        score = min(result.score + boost * matches, 1.0) if matches else result.score
        boosted.append(replace(result, score=score))
    boosted.sort(key=lambda item: item.score, reverse=True)
    return boosted


def row_to_result(row: dict) -> SearchResult:
    chunk = Chunk(
        id=row["id"],
        text=row["text"],
        source_path=row["source_path"],
        line_start=row["line_start"],
        line_end=row["line_end"],
        chunk_ordinal=row["chunk_ordinal"],
        metadata=ChunkMetadata(
            file_name=row["file_name"],
            directory=row["directory"],
            indexed_at=row["indexed_at"],
            char_count=row["char_count"],
        ),
        embedding=row.get("embedding"),
    )
    return SearchResult(chunk=chunk, score=float(row["score"]), distance=float(row["distance"]))


class Searcher:
    """High-level API to query the vector store."""

    def __init__(
        self,
        embedder: EmbeddingModel,
        store: SQLiteVectorStore,
        *,
        overfetch_multiplier: int = DEFAULT_OVERFETCH_MULTIPLIER,
        keyword_boost: float = DEFAULT_KEYWORD_BOOST,
        min_keyword_length: int = DEFAULT_MIN_KEYWORD_LENGTH,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.overfetch_multiplier = overfetch_multiplier
        self.keyword_boost = keyword_boost
        self.min_keyword_length = min_keyword_length

    def search(self, query: str, *, limit: int = 10, hybrid: bool = True) -> List[SearchResult]:
        """Rank chunks for ``query``; at most ``limit`` results, best first.

        Twice as many candidates as requested are fetched by vector distance so
        that keyword boosting can promote a result from just outside the top
        ``limit``.
        """
        if limit <= 0:
            return []
        embedding = self.embedder.embed_query(query)
        rows = self.store.vector_search(embedding, limit=limit * self.overfetch_multiplier)
        candidates = [row_to_result(row) for row in rows]

        if not hybrid:
            return candidates[:limit]

        keywords = extract_keywords(query, min_length=self.min_keyword_length)
        LOGGER.debug("Hybrid rescoring %d candidates with keywords %s", len(candidates), keywords)
        return apply_keyword_boost(candidates, keywords, boost=self.keyword_boost)[:limit]


def format_results(results: Sequence[SearchResult]) -> str:
    """Render results as a numbered plain-text listing."""
    if not results:
        return "No results found."

    lines = [f"Found {len(results)} results:", ""]
    for position, result in enumerate(results, start=1):
        chunk = result.chunk
        snippet = chunk.text[:PREVIEW_CHARS].replace("\n", " ")
        ellipsis = "..." if len(chunk.text) > PREVIEW_CHARS else ""
        lines.append(
            f"{position}. {chunk.metadata.file_name} (lines {chunk.line_start}-{chunk.line_end})"
        )
        lines.append(f"   Score: {result.score:.3f}")
        lines.append(f"   Path: {chunk.source_path}")
        lines.append(f"   Preview: {snippet}{ellipsis}")
        lines.append("")
    return "\n".join(lines)
