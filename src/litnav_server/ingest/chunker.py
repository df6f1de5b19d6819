"""Fixed-size, overlapping character windows over a page of text."""

from __future__ import annotations

from typing import List, NamedTuple, Tuple

MIN_CHUNK_SIZE = 200
MAX_OVERLAP_RATIO = 0.8


class PageChunk(NamedTuple):
    page: int
    text: str


def effective_window(size: int, overlap: int) -> Tuple[int, int]:
    """
    Clamp user-supplied chunk settings.

    Returns
    -------
    (size, overlap)
        ``size`` is at least 200; ``overlap`` lies in [0, floor(0.8 * size)].
    """
    eff_size = max(MIN_CHUNK_SIZE, int(size))
    eff_overlap = max(0, min(int(overlap), int(eff_size * MAX_OVERLAP_RATIO)))
    return eff_size, eff_overlap


def chunk_page_text(text: str, page: int, size: int, overlap: int) -> List[PageChunk]:
    """
    Split one page into windows of ``size`` characters that advance by
    ``size - overlap``. The last window may be shorter.

    Whitespace-only input yields no chunks.
    """
    if not text or not text.strip():
        return []

    eff_size, eff_overlap = effective_window(size, overlap)
    step = eff_size - eff_overlap

    chunks: List[PageChunk] = []
    start = 0
    length = len(text)

    while start < length:
        end = min(length, start + eff_size)
        chunks.append(PageChunk(page=page, text=text[start:end]))
        if end >= length:
            break
        start += step

    return chunks
