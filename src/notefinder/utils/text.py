"""Paragraph-first document chunking."""

from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from typing import List, NamedTuple

from notefinder.errors import ChunkingError
from notefinder.models import Chunk, ChunkMetadata
from notefinder.utils.files import chunk_id, normalize_path

DEFAULT_MAX_CHUNK_SIZE = 1000
DEFAULT_MIN_CHUNK_SIZE = 200

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SEPARATOR = "\n\n"


class Paragraph(NamedTuple):
    text: str
    line_start: int
    line_end: int


def split_paragraphs(text: str) -> List[Paragraph]:
    """Split text on blank lines, dropping empty paragraphs.

    Line numbers are 1-based and refer to the trimmed paragraph's position in
    the original text.
    """
    paragraphs: List[Paragraph] = []
    offset = 0
    for match in [*_PARAGRAPH_BREAK.finditer(text), None]:
        end = match.start() if match else len(text)
        piece = text[offset:end]
        stripped = piece.strip()
        if stripped:
            first = offset + (len(piece) - len(piece.lstrip()))
            line_start = text.count("\n", 0, first) + 1
            paragraphs.append(
                Paragraph(stripped, line_start, line_start + stripped.count("\n"))
            )
        if match:
            offset = match.end()
    return paragraphs


def chunk_document(
    text: str,
    source_path: str | os.PathLike[str],
    *,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE,
    indexed_at: str | None = None,
) -> List[Chunk]:
    """Group a document's paragraphs into chunks of bounded size.

    Paragraphs are never split. The buffer is flushed before a paragraph that
    would push it past ``max_chunk_size``, provided the buffer already holds
    ``min_chunk_size`` characters. Whatever remains at the end becomes the
    final chunk, even when it is shorter than ``min_chunk_size``, so a short
    document still yields exactly one chunk. Empty or blank input yields no
    chunks.
    """
    if not isinstance(text, str):
        raise ChunkingError(f"Expected document text as str, got {type(text).__name__}")

    normalized = normalize_path(source_path)
    timestamp = indexed_at or datetime.now(timezone.utc).isoformat()

    groups: List[List[Paragraph]] = []
    buffer: List[Paragraph] = []
    buffer_len = 0

    for paragraph in split_paragraphs(text):
        if (
            buffer
            and buffer_len + len(paragraph.text) > max_chunk_size
            and buffer_len >= min_chunk_size
        ):
            groups.append(buffer)
            buffer, buffer_len = [], 0
        if buffer:
            buffer_len += len(_SEPARATOR)
        buffer.append(paragraph)
        buffer_len += len(paragraph.text)

    if buffer:
        groups.append(buffer)

    return [
        _make_chunk(group, normalized, ordinal, timestamp)
        for ordinal, group in enumerate(groups)
    ]


def _make_chunk(
    paragraphs: List[Paragraph], source_path: str, ordinal: int, indexed_at: str
) -> Chunk:
    body = _SEPARATOR.join(p.text for p in paragraphs)
    return Chunk(
        id=chunk_id(source_path, ordinal),
        text=body,
        source_path=source_path,
        line_start=paragraphs[0].line_start,
        line_end=paragraphs[-1].line_end,
        chunk_ordinal=ordinal,
        metadata=ChunkMetadata(
            file_name=os.path.basename(source_path),
            directory=os.path.dirname(source_path),
            indexed_at=indexed_at,
            char_count=len(body),
        ),
    )
