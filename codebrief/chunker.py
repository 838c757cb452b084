"""Split long text into overlapping fixed-size windows."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

DEFAULT_CHUNK_OVERLAP_CHARS = 128
OVERLAP_CLAMP_RATIO = 0.1


@dataclass(frozen=True)
class Chunk:
    """One window of the source text and its position in the sequence."""
    text: str
    index: int


def effective_overlap(chunk_size: int, overlap: Optional[int]) -> int:
    """Resolve the overlap actually used for a given chunk size."""
    if overlap is None:
        overlap = DEFAULT_CHUNK_OVERLAP_CHARS
    if overlap < 0:
        raise ValueError(f"overlap must be >= 0, got {overlap}")
    if overlap >= chunk_size:
        overlap = math.ceil(chunk_size * OVERLAP_CLAMP_RATIO)
    # a one-character window cannot overlap and still advance
    return min(overlap, chunk_size - 1)


def split_text(text: str, chunk_size: int, overlap: Optional[int] = None) -> List[Chunk]:
    """Split text into windows of chunk_size characters.

    Window k covers [k*(chunk_size-overlap), k*(chunk_size-overlap)+chunk_size),
    cut at the end of the text. Splitting stops at the first window that
    reaches the end, so no window is made up of overlap only.

    An overlap of None uses DEFAULT_CHUNK_OVERLAP_CHARS. Any overlap that is
    >= chunk_size is clamped to ceil(10% of chunk_size).

    Empty or whitespace-only text yields no chunks.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be > 0, got {chunk_size}")
    if not text or not text.strip():
        return []

    length = len(text)
    if chunk_size >= length:
        return [Chunk(text=text, index=0)]

    step = chunk_size - effective_overlap(chunk_size, overlap)
    chunks: List[Chunk] = []
    start = 0
    while start < length:
        end = min(start + chunk_size, length)
        chunks.append(Chunk(text=text[start:end], index=len(chunks)))
        if end >= length:
            break
        start += step
    return chunks
