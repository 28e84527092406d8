"""SQLite-backed vector store for document chunks."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Sequence

import numpy as np

from notefinder.errors import StoreConnectionError, StoreQueryError, StoreWriteError
from notefinder.models import Chunk
from notefinder.utils.files import directory_size, normalize_path

LOGGER = logging.getLogger(__name__)

DB_FILENAME = "index.db"
TABLE_NAME = "document_chunks"

_COLUMNS = (
    "id",
    "text",
    "source_path",
    "line_start",
    "line_end",
    "chunk_ordinal",
    "file_name",
    "directory",
    "indexed_at",
    "char_count",
)


def score_from_distance(distance: float) -> float:
    """Convert a cosine distance into a similarity score in ``[0, 1]``."""
    return min(max(1.0 - distance, 0.0), 1.0)


class SQLiteVectorStore:
    """Persistence layer for chunk rows and their embeddings.

    The store lives in a directory; the chunk table is created by the first
    `add_chunks` call, which also fixes the vector width for the index.
    Nearest-neighbour search is exact cosine distance computed with numpy.
    """

    def __init__(self, location: Path, *, dimension: int | None = None) -> None:
        self.location = Path(location)
        self.db_path = self.location / DB_FILENAME
        self.dimension = dimension
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        return self.open()

    def open(self) -> sqlite3.Connection:
        """Create the storage directory and connect; safe to call repeatedly."""
        if self._conn is not None:
            return self._conn
        with self._lock:
            if self._conn is not None:
                return self._conn
            try:
                self.location.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA synchronous=NORMAL;")
                conn.execute(
                    "CREATE TABLE IF NOT EXISTS index_meta (key TEXT PRIMARY KEY, value TEXT)"
                )
                conn.commit()
            except (OSError, sqlite3.Error) as exc:
                raise StoreConnectionError(
                    f"Cannot open index at {self.location}: {exc}"
                ) from exc
            self._conn = conn
            if self.has_table():
                LOGGER.debug("Opened existing table %s at %s", TABLE_NAME, self.db_path)
                stored = self._stored_dimension()
                if stored is not None:
                    self.dimension = stored
            else:
                LOGGER.debug("Table %s does not exist yet, will create on first insert", TABLE_NAME)
            return conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self.open()
        with self._lock:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def has_table(self) -> bool:
        conn = self.open()
        with self._lock:
            row = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
                (TABLE_NAME,),
            ).fetchone()
        return row is not None

    def _stored_dimension(self) -> int | None:
        row = self.open().execute(
            "SELECT value FROM index_meta WHERE key = 'dimension'"
        ).fetchone()
        return int(row["value"]) if row else None

    def _create_table(self, conn: sqlite3.Connection, dimension: int) -> None:
        LOGGER.info("Creating new table: %s", TABLE_NAME)
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                id TEXT NOT NULL,
                text TEXT NOT NULL,
                embedding BLOB NOT NULL,
                source_path TEXT NOT NULL,
                line_start INTEGER NOT NULL,
                line_end INTEGER NOT NULL,
                chunk_ordinal INTEGER NOT NULL,
                file_name TEXT NOT NULL,
                directory TEXT NOT NULL,
                indexed_at TEXT NOT NULL,
                char_count INTEGER NOT NULL
            )
            """
        )
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_source_path ON {TABLE_NAME}(source_path)"
        )
        conn.execute(
            "INSERT OR REPLACE INTO index_meta(key, value) VALUES ('dimension', ?)",
            (str(dimension),),
        )
        self.dimension = dimension

    def add_chunks(self, chunks: Sequence[Chunk]) -> int:
        """Append chunk rows; callers delete stale rows for the path beforehand."""
        if not chunks:
            LOGGER.debug("No chunks to add")
            return 0

        vectors = []
        for chunk in chunks:
            if chunk.embedding is None:
                raise StoreWriteError(f"Chunk {chunk.id} of {chunk.source_path} has no embedding")
            vectors.append(np.asarray(chunk.embedding, dtype="float32").reshape(-1))

        widths = {vector.shape[0] for vector in vectors}
        if len(widths) != 1:
            raise StoreWriteError(f"Embeddings in one batch have mixed widths: {sorted(widths)}")
        width = widths.pop()

        try:
            with self.transaction() as conn:
                if not self.has_table():
                    self._create_table(conn, self.dimension or width)
                if self.dimension is not None and width != self.dimension:
                    raise StoreWriteError(
                        f"Embedding width {width} does not match index dimension {self.dimension}"
                    )
                conn.executemany(
                    f"""
                    INSERT INTO {TABLE_NAME}(
                        id, text, embedding, source_path, line_start, line_end,
                        chunk_ordinal, file_name, directory, indexed_at, char_count
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            chunk.id,
                            chunk.text,
                            sqlite3.Binary(vector.tobytes()),
                            chunk.source_path,
                            chunk.line_start,
                            chunk.line_end,
                            chunk.chunk_ordinal,
                            chunk.metadata.file_name,
                            chunk.metadata.directory,
                            chunk.metadata.indexed_at,
                            chunk.metadata.char_count,
                        )
                        for chunk, vector in zip(chunks, vectors)
                    ],
                )
        except StoreWriteError:
            raise
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Failed to add chunks: {exc}") from exc

        LOGGER.debug("Added %d chunks to %s", len(chunks), TABLE_NAME)
        return len(chunks)

    def delete_by_path(self, path: Path | str) -> int:
        """Remove every chunk of a document; returns the number of rows removed."""
        if not self.has_table():
            return 0
        normalized = normalize_path(path)
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    f"DELETE FROM {TABLE_NAME} WHERE source_path = ?", (normalized,)
                )
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Failed to delete chunks for {normalized}: {exc}") from exc
        LOGGER.debug("Deleted %d chunks for file: %s", cursor.rowcount, normalized)
        return cursor.rowcount

    def vector_search(
        self,
        embedding: np.ndarray,
        *,
        limit: int = 10,
        path_filter: Path | str | None = None,
    ) -> List[dict]:
        """Return the ``limit`` rows nearest to ``embedding``, closest first.

        Each row carries ``distance`` (cosine distance, >= 0) and ``score``.
        """
        if limit <= 0 or not self.has_table():
            return []

        query = np.asarray(embedding, dtype="float32").reshape(-1)
        if self.dimension is not None and query.shape[0] != self.dimension:
            raise StoreQueryError(
                f"Query width {query.shape[0]} does not match index dimension {self.dimension}"
            )

        sql = f"SELECT {', '.join(_COLUMNS)}, embedding FROM {TABLE_NAME}"
        params: tuple = ()
        if path_filter is not None:
            sql += " WHERE source_path = ?"
            params = (normalize_path(path_filter),)
        sql += " ORDER BY rowid"

        try:
            with self._lock:
                rows = self.open().execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreQueryError(f"Search failed: {exc}") from exc

        if not rows:
            return []

        embeddings = np.vstack([np.frombuffer(row["embedding"], dtype="float32") for row in rows])
        norms = np.linalg.norm(embeddings, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        distances = np.clip(1.0 - (embeddings @ query) / norms, 0.0, None)

        order = np.argsort(distances, kind="stable")[:limit]

        results: List[dict] = []
        for idx in order:
            row = rows[idx]
            distance = float(distances[idx])
            item = {column: row[column] for column in _COLUMNS}
            item["embedding"] = embeddings[idx]
            item["distance"] = distance
            item["score"] = score_from_distance(distance)
            results.append(item)
        return results

    def count_rows(self) -> int:
        if not self.has_table():
            return 0
        try:
            with self._lock:
                row = self.open().execute(f"SELECT COUNT(*) FROM {TABLE_NAME}").fetchone()
        except sqlite3.Error as exc:
            raise StoreQueryError(f"Failed to count rows: {exc}") from exc
        return int(row[0])

    def scan_all(self) -> List[dict]:
        """Return every row (without embeddings) in insertion order."""
        if not self.has_table():
            return []
        try:
            with self._lock:
                rows = self.open().execute(
                    f"SELECT {', '.join(_COLUMNS)} FROM {TABLE_NAME} ORDER BY rowid"
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreQueryError(f"Failed to scan index: {exc}") from exc
        return [dict(row) for row in rows]

    def list_files(self) -> List[str]:
        """Distinct source paths in first-indexed order."""
        if not self.has_table():
            return []
        try:
            with self._lock:
                rows = self.open().execute(
                    f"SELECT source_path FROM {TABLE_NAME} GROUP BY source_path ORDER BY MIN(rowid)"
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreQueryError(f"Failed to list files: {exc}") from exc
        return [row["source_path"] for row in rows]

    def drop_table(self) -> None:
        """Remove the chunk table; the next insert recreates it."""
        if not self.has_table():
            return
        try:
            with self.transaction() as conn:
                conn.execute(f"DROP TABLE IF EXISTS {TABLE_NAME}")
                conn.execute("DELETE FROM index_meta WHERE key = 'dimension'")
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Failed to clear index: {exc}") from exc
        self.dimension = None
        LOGGER.info("Index cleared")

    def estimate_storage_bytes(self) -> int:
        return directory_size(self.location)
