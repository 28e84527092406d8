"""Shared fixtures: a deterministic stand-in for the sentence-transformer model."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Iterable, Sequence

import numpy as np
import pytest

from notefinder.index.storage import SQLiteVectorStore

_WORD = re.compile(r"\w+")


class FakeEmbedder:
    """Bag-of-words hashing embedder with unit-length float32 output."""

    def __init__(self, dimension: int = 64) -> None:
        self.dimension = dimension
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype="float32")
        for word in _WORD.findall(text.lower()):
            slot = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % self.dimension
            vector[slot] += 1.0
        norm = np.linalg.norm(vector)
        if norm == 0:
            vector[0] = 1.0
            return vector
        return vector / norm

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        sentences = list(texts)
        self.calls.append(sentences)
        if not sentences:
            return np.empty((0, self.dimension), dtype="float32")
        return np.vstack([self._vector(text) for text in sentences])

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        return self.embed(texts)

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed([text])[0]


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def store(tmp_path: Path):
    """Vector store in a fresh temporary directory."""
    vector_store = SQLiteVectorStore(tmp_path / "index")
    yield vector_store
    vector_store.close()
