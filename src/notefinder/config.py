"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from notefinder.embedding.encoder import DEFAULT_BATCH_SIZE, DEFAULT_MODEL
from notefinder.index.indexer import DEFAULT_INDEX_PATTERNS, DEFAULT_PATTERN
from notefinder.index.search import (
    DEFAULT_KEYWORD_BOOST,
    DEFAULT_MIN_KEYWORD_LENGTH,
    DEFAULT_OVERFETCH_MULTIPLIER,
)
from notefinder.utils.files import DEFAULT_EXCLUDE_DIRS
from notefinder.utils.text import DEFAULT_MAX_CHUNK_SIZE, DEFAULT_MIN_CHUNK_SIZE

DEFAULT_DB_DIR = Path(".notefinder")


@dataclass(slots=True)
class AppConfig:
    db_path: Path = DEFAULT_DB_DIR
    workspace_root: Path = field(default_factory=Path.cwd)
    model_name: str = DEFAULT_MODEL
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE
    batch_size: int = DEFAULT_BATCH_SIZE
    overfetch_multiplier: int = DEFAULT_OVERFETCH_MULTIPLIER
    keyword_boost: float = DEFAULT_KEYWORD_BOOST
    min_keyword_length: int = DEFAULT_MIN_KEYWORD_LENGTH
    default_limit: int = 10
    max_limit: int = 100
    default_pattern: str = DEFAULT_PATTERN
    index_patterns: tuple[str, ...] = DEFAULT_INDEX_PATTERNS
    exclude_dirs: tuple[str, ...] = DEFAULT_EXCLUDE_DIRS

    def __post_init__(self) -> None:
        self.db_path = Path(self.db_path)
        self.workspace_root = Path(self.workspace_root)
        if self.min_chunk_size > self.max_chunk_size:
            raise ValueError("min_chunk_size must not exceed max_chunk_size")
        if self.batch_size < 1:
            raise ValueError("batch_size must be positive")
        if self.overfetch_multiplier < 1:
            raise ValueError("overfetch_multiplier must be at least 1")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "AppConfig":
        """Build a config from ``NOTEFINDER_*`` / ``WORKSPACE_ROOT`` variables.

        Keyword overrides that are not ``None`` win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict = {}
        if env.get("WORKSPACE_ROOT"):
            values["workspace_root"] = Path(env["WORKSPACE_ROOT"])
        if env.get("NOTEFINDER_DB_PATH"):
            values["db_path"] = Path(env["NOTEFINDER_DB_PATH"])
        if env.get("NOTEFINDER_MODEL"):
            values["model_name"] = env["NOTEFINDER_MODEL"]
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        """Storage directory; relative paths resolve against ``base_dir`` or the workspace."""
        if self.db_path.is_absolute():
            return self.db_path
        return (base_dir or self.workspace_root) / self.db_path
