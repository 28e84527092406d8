"""Tests for hybrid semantic search."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

from notefinder.index.indexer import Indexer
from notefinder.index.search import (
    SearchResult,
    Searcher,
    apply_keyword_boost,
    extract_keywords,
    format_results,
    row_to_result,
)
from notefinder.models import Chunk, ChunkMetadata


def _row(idx: int, score: float, text: str = "plain text", path: str = "/notes/doc.md") -> dict:
    return {
        "id": f"id{idx}",
        "text": text,
        "source_path": path,
        "line_start": 1 + idx,
        "line_end": 2 + idx,
        "chunk_ordinal": idx,
        "file_name": Path(path).name,
        "directory": str(Path(path).parent),
        "indexed_at": "2024-01-01T00:00:00+00:00",
        "char_count": len(text),
        "distance": 1.0 - score,
        "score": score,
    }


def _result(score: float, text: str, idx: int = 0) -> SearchResult:
    return row_to_result(_row(idx, score, text))


class TestExtractKeywords:
    """Test extract_keywords function."""

    def test_keeps_words_longer_than_three(self) -> None:
        """Short words are ignored and the rest lowercased."""
        assert extract_keywords("How can Machine Learning work") == ["machine", "learning", "work"]

    def test_keeps_repeated_words(self) -> None:
        """Repeated words are kept once per occurrence."""
        assert extract_keywords("notes notes NOTES") == ["notes", "notes", "notes"]

    def test_repeated_keyword_boosts_per_occurrence(self) -> None:
        """Each occurrence of a query word adds the boost, still capped at 1.0."""
        keywords = extract_keywords("learning learning")

        low = apply_keyword_boost([_result(0.3, "deep learning")], keywords)
        high = apply_keyword_boost([_result(0.8, "deep learning")], keywords)

        assert low[0].score == pytest.approx(0.7)
        assert high[0].score == 1.0

    def test_custom_min_length(self) -> None:
        """Minimum length is configurable."""
        assert extract_keywords("a bb ccc", min_length=2) == ["bb", "ccc"]

    def test_blank_query(self) -> None:
        """No words, no keywords."""
        assert extract_keywords("   ") == []


class TestApplyKeywordBoost:
    """Test apply_keyword_boost function."""

    def test_boost_per_keyword(self) -> None:
        """Each matching keyword adds the boost."""
        results = [_result(0.4, "Machine learning basics")]
        boosted = apply_keyword_boost(results, ["machine", "learning"], boost=0.2)
        assert boosted[0].score == pytest.approx(0.8)

    def test_capped_at_one(self) -> None:
        """Boosted scores never exceed 1.0."""
        results = [_result(0.9, "machine learning")]
        boosted = apply_keyword_boost(results, ["machine", "learning"])
        assert boosted[0].score == 1.0

    def test_case_insensitive_substring(self) -> None:
        """Keywords match anywhere in the lowercased chunk text."""
        results = [_result(0.1, "MACHINES are fun")]
        boosted = apply_keyword_boost(results, ["machine"])
        assert boosted[0].score == pytest.approx(0.3)

    def test_reranks(self) -> None:
        """A boosted result can overtake a semantically closer one."""
        results = [_result(0.7, "unrelated", 0), _result(0.6, "keyword here", 1)]
        boosted = apply_keyword_boost(results, ["keyword"])
        assert [r.chunk.id for r in boosted] == ["id1", "id0"]

    def test_stable_ties(self) -> None:
        """Equal scores keep their semantic order."""
        results = [_result(0.5, "a", 0), _result(0.5, "b", 1), _result(0.5, "c", 2)]
        boosted = apply_keyword_boost(results, ["zzzz"])
        assert [r.chunk.id for r in boosted] == ["id0", "id1", "id2"]

    def test_never_lowers_scores(self) -> None:
        """Every score is at least the semantic score."""
        results = [_result(s, t, i) for i, (s, t) in enumerate([(0.3, "note"), (0.9, "other"), (0.5, "note note")])]
        boosted = {r.chunk.id: r.score for r in apply_keyword_boost(results, ["note"])}
        for original in results:
            assert boosted[original.chunk.id] >= original.score

    def test_input_not_mutated(self) -> None:
        """Original results keep their scores."""
        results = [_result(0.4, "machine")]
        apply_keyword_boost(results, ["machine"])
        assert results[0].score == 0.4


class TestSearcher:
    """Test Searcher class."""

    def _searcher(self, rows: list[dict]) -> tuple[Searcher, MagicMock, MagicMock]:
        mock_embedder = MagicMock()
        mock_embedder.embed_query.return_value = np.array([0.1, 0.2, 0.3], dtype="float32")
        mock_store = MagicMock()
        mock_store.vector_search.return_value = rows
        return Searcher(mock_embedder, mock_store), mock_embedder, mock_store

    def test_overfetches_twice_the_limit(self) -> None:
        """Store is asked for 2 x limit candidates."""
        searcher, mock_embedder, mock_store = self._searcher([])

        searcher.search("test query", limit=5)

        mock_embedder.embed_query.assert_called_once_with("test query")
        assert mock_store.vector_search.call_args.kwargs["limit"] == 10

    def test_semantic_only_truncates(self) -> None:
        """With hybrid off results are the first limit rows in store order."""
        rows = [_row(i, 0.9 - i * 0.1, "machine learning") for i in range(6)]
        searcher, _, _ = self._searcher(rows)

        results = searcher.search("machine learning", limit=3, hybrid=False)

        assert [r.chunk.id for r in results] == ["id0", "id1", "id2"]
        assert [r.score for r in results] == pytest.approx([0.9, 0.8, 0.7])

    def test_hybrid_promotes_from_overfetch(self) -> None:
        """A keyword match just outside the top limit can be promoted into it."""
        rows = [
            _row(0, 0.60, "semantic neighbour"),
            _row(1, 0.55, "another neighbour"),
            _row(2, 0.50, "machine learning notes"),
            _row(3, 0.45, "unrelated"),
        ]
        searcher, _, _ = self._searcher(rows)

        results = searcher.search("machine learning", limit=2)

        assert [r.chunk.id for r in results] == ["id2", "id0"]
        assert results[0].score == pytest.approx(0.9)

    def test_limit_respected(self) -> None:
        """Never returns more than limit results."""
        rows = [_row(i, 0.5, "note") for i in range(10)]
        searcher, _, _ = self._searcher(rows)
        assert len(searcher.search("note", limit=4)) == 4

    def test_zero_limit(self) -> None:
        """Non-positive limit returns nothing without embedding."""
        searcher, mock_embedder, _ = self._searcher([])
        assert searcher.search("anything", limit=0) == []
        mock_embedder.embed_query.assert_not_called()

    def test_scores_sorted_and_bounded(self) -> None:
        """Scores are non-increasing and within [0, 1]."""
        rows = [_row(i, s, t) for i, (s, t) in enumerate([(0.2, "deep learning"), (0.9, "x"), (0.5, "learning")])]
        searcher, _, _ = self._searcher(rows)

        results = searcher.search("learning", limit=3)
        scores = [r.score for r in results]

        assert scores == sorted(scores, reverse=True)
        assert all(0.0 <= s <= 1.0 for s in scores)


class TestSearchEndToEnd:
    """Search against a real store filled by the indexer."""

    def test_machine_learning_boost(self, fake_embedder, store, tmp_path: Path) -> None:
        """A chunk containing both query words scores at least 0.2 above its semantic score."""
        (tmp_path / "ml.md").write_text("deep learning machine")
        (tmp_path / "related.md").write_text("Neural networks fit weights by gradient descent.")
        Indexer(fake_embedder, store).index_directory(tmp_path, "*.md")
        searcher = Searcher(fake_embedder, store)

        semantic = {
            r.chunk.source_path: r.score
            for r in searcher.search("machine learning", limit=5, hybrid=False)
        }
        hybrid = searcher.search("machine learning", limit=5)

        top = hybrid[0]
        assert top.chunk.metadata.file_name == "ml.md"
        assert top.score >= min(semantic[top.chunk.source_path] + 0.2, 1.0) - 1e-6
        assert top.chunk.embedding is not None

    def test_empty_index(self, fake_embedder, store) -> None:
        """Searching an empty index returns no results."""
        assert Searcher(fake_embedder, store).search("anything") == []


class TestFormatResults:
    """Test format_results function."""

    def test_no_results(self) -> None:
        """Empty results render a fixed message."""
        assert format_results([]) == "No results found."

    def test_listing(self) -> None:
        """Each result shows name, lines, score, path and preview."""
        text = "line one\nline two " + "z" * 200
        result = SearchResult(
            chunk=Chunk(
                id="abc",
                text=text,
                source_path="/notes/doc.md",
                line_start=3,
                line_end=7,
                chunk_ordinal=0,
                metadata=ChunkMetadata("doc.md", "/notes", "2024-01-01T00:00:00+00:00", len(text)),
            ),
            score=0.87654,
            distance=0.12346,
        )

        output = format_results([result])

        assert output.startswith("Found 1 results:")
        assert "1. doc.md (lines 3-7)" in output
        assert "   Score: 0.877" in output
        assert "   Path: /notes/doc.md" in output
        assert "   Preview: line one line two " in output
        assert "..." in output
