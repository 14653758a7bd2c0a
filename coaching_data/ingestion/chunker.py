from __future__ import annotations

from typing import Any, List

DEFAULT_CHUNK_SIZE = 500
DEFAULT_OVERLAP = 50


def chunk_text(
    text: Any,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> List[str]:
    """
    Split text into overlapping word windows.

    Text of ``chunk_size`` words or fewer comes back as a single stripped
    chunk. Longer text is cut into ``chunk_size``-word windows, each starting
    ``chunk_size - overlap`` words after the previous one. Windowing stops
    at the first window that reaches the end of the text, so no trailing
    fragment made only of overlap words is emitted.

    Never raises: non-string or blank input yields an empty list.
    """
    if not isinstance(text, str):
        return []

    words = text.split()
    if not words:
        return []

    chunk_size = max(1, int(chunk_size))
    overlap = max(0, int(overlap))

    if len(words) <= chunk_size:
        return [text.strip()]

    step = max(1, chunk_size - overlap)
    total = len(words)

    chunks: List[str] = []
    start = 0
    while True:
        chunks.append(" ".join(words[start:start + chunk_size]))
        # Window reached the end of the text
        if start + chunk_size >= total:
            break
        start += step

    return chunks
