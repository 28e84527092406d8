"""Embedding model management."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Literal, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

from notefinder.errors import EmbeddingFailure, EmbeddingUnavailable

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_BATCH_SIZE = 32

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = DEFAULT_BATCH_SIZE
    normalize: bool = True
    backend: Literal["torch", "onnx", "openvino"] = "torch"
    device: str | None = None
    local_files_only: bool = False
    load_timeout: float = 120.0


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` for query and document embeddings.

    The model is loaded on first use. Loading happens once per instance: threads
    that call in while another thread is loading wait for that load instead of
    starting their own, and give up with `EmbeddingUnavailable` after
    ``config.load_timeout`` seconds. A failed load is not cached, so the next
    call tries again.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        self._model: SentenceTransformer | None = None
        self._dimension: int | None = None
        self._load_lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    @property
    def dimension(self) -> int:
        """Output width of the model; loads the model if needed."""
        self._ensure_loaded()
        assert self._dimension is not None
        return self._dimension

    def _ensure_loaded(self) -> SentenceTransformer:
        if self._model is not None:
            return self._model

        if not self._load_lock.acquire(timeout=self.config.load_timeout):
            raise EmbeddingUnavailable(
                f"Embedding model {self.config.model_name} is not ready yet "
                f"(still loading after {self.config.load_timeout:.0f}s)"
            )
        try:
            if self._model is None:
                self._model = self._load_model()
            return self._model
        finally:
            self._load_lock.release()

    def _load_model(self) -> SentenceTransformer:
        logger.info("Loading embedding model %s...", self.config.model_name)
        try:
            model = SentenceTransformer(
                self.config.model_name,
                backend=self.config.backend,
                device=self.config.device,
                local_files_only=self.config.local_files_only,
            )
            dimension = model.get_sentence_embedding_dimension()
        except Exception as exc:
            raise EmbeddingUnavailable(
                f"Failed to load embedding model {self.config.model_name}: {exc}"
            ) from exc

        if not dimension:
            raise EmbeddingUnavailable(
                f"Embedding model {self.config.model_name} does not report a fixed dimension"
            )
        self._dimension = int(dimension)
        logger.info(
            "Embedding model loaded | Backend: %s | Dimension: %d",
            self.config.backend,
            self._dimension,
        )
        return model

    def _encode(self, model: SentenceTransformer, sentences: list[str]) -> np.ndarray:
        try:
            embeddings = model.encode(
                sentences,
                batch_size=self.config.batch_size,
                show_progress_bar=False,
                convert_to_numpy=True,
                normalize_embeddings=self.config.normalize,
            )
        except Exception as exc:
            raise EmbeddingFailure(f"Embedding generation failed: {exc}") from exc
        return np.asarray(embeddings, dtype="float32")

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts, one row per text.

        Texts are encoded in groups of ``config.batch_size``. If any group fails
        the whole call fails, so callers never receive fewer rows than texts.
        """
        sentences = list(texts)
        model = self._ensure_loaded()
        if not sentences:
            return np.empty((0, self.dimension), dtype="float32")

        step = max(self.config.batch_size, 1)
        parts = []
        for start in range(0, len(sentences), step):
            batch = sentences[start : start + step]
            vectors = self._encode(model, batch)
            if vectors.shape != (len(batch), self.dimension):
                raise EmbeddingFailure(
                    f"Expected {len(batch)} vectors of width {self.dimension}, "
                    f"got shape {vectors.shape}"
                )
            parts.append(vectors)
        return np.vstack(parts)

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        """Alias of `embed` for callers that work with explicit batches."""
        return self.embed(texts)

    def embed_query(self, text: str) -> np.ndarray:
        """Convenience wrapper for single-query embedding."""
        return self.embed([text])[0]
