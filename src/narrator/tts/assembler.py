"""
Ordered concatenation of per-chunk audio.

The pipeline hands over one PCM segment per chunk; combine() joins them into
a single buffer in chunk order. The output is allocated once at its final
size and each segment is copied at its running offset.
"""
from __future__ import annotations

from typing import Protocol, Sequence


class IndexedAudio(Protocol):
    index: int
    pcm_bytes: bytes


def combine(results: Sequence[IndexedAudio]) -> bytes:
    """
    Concatenate chunk audio in index order.

    Args:
        results: Chunk results ordered by index, starting at 0.

    Returns:
        One buffer whose length is the sum of all segment lengths.

    Raises:
        ValueError: If indices are not exactly 0, 1, 2, ... in order.
    """
    total = 0
    for expected, result in enumerate(results):
        if result.index != expected:
            raise ValueError(
                f"chunk results out of order: expected index {expected}, got {result.index}"
            )
        total += len(result.pcm_bytes)

    out = bytearray(total)
    offset = 0
    for result in results:
        size = len(result.pcm_bytes)
        out[offset:offset + size] = result.pcm_bytes
        offset += size

    return bytes(out)
