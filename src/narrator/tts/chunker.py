"""
Text Chunking for Remote Speech Generation.

The remote speech model rejects oversized inputs, so long text is split into
segments no longer than max_size characters before generation.

Splitting strategy (each level only kicks in when the previous one cannot
produce a small enough piece):
    1. Sentences: split on runs of terminals (. ? ! : newline), keeping the
       terminal run attached to the sentence it ends
    2. Words: pack whitespace-separated words of an oversized sentence
    3. Characters: a single word longer than max_size is cut into
       max_size slices (the cut may land mid-word)

Sentences and words are packed greedily: a chunk keeps growing until the
next piece would push it over max_size.

Example:
    >>> from narrator.tts.chunker import split_text
    >>> [c.content for c in split_text("One. Two! Three?", max_size=10)]
    ['One. Two!', 'Three?']
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List

from narrator.core.logging import get_logger, verbose
from narrator.utils.timeit import timeit

_LOG = get_logger("narrator.chunker")


# =============================================================================
# Regex Patterns for Text Splitting
# =============================================================================

# Runs of sentence terminals; the capture group keeps them in re.split output
_SENTENCE_SPLIT = re.compile(r"([.?!:\n]+)")

# Whitespace runs between words, kept so packed words retain their spacing
_WORD_SPLIT = re.compile(r"(\s+)")


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class TextChunk:
    """
    One model-safe text segment.

    Attributes:
        index: 0-based position in the source text.
        content: Trimmed, non-empty chunk text.
        is_final: True for the last chunk of the text.
    """
    index: int
    content: str
    is_final: bool


@dataclass
class ChunkingResult:
    """
    Result of a timed chunking operation.

    Attributes:
        chunks: Ordered chunks ready for generation.
        timings_s: Timing measurements in seconds.
    """
    chunks: List[TextChunk]
    timings_s: Dict[str, float]


# =============================================================================
# Chunking Functions
# =============================================================================

def split_text(text: str, max_size: int) -> List[TextChunk]:
    """
    Split text into ordered chunks of at most max_size characters.

    Args:
        text: Source text.
        max_size: Maximum characters per chunk.

    Returns:
        List of TextChunk. Empty when text is empty or whitespace only.

    Raises:
        ValueError: If max_size is not positive.
    """
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")

    pieces = _split_pieces(text, max_size)
    last = len(pieces) - 1
    return [
        TextChunk(index=i, content=piece, is_final=(i == last))
        for i, piece in enumerate(pieces)
    ]


def chunk_text(text: str, max_size: int) -> ChunkingResult:
    """Run split_text and record how long it took."""
    timings: Dict[str, float] = {}

    with timeit("chunk") as t:
        chunks = split_text(text, max_size)

    timings["chunk"] = t.seconds
    verbose(
        _LOG, "chunked",
        chunks=len(chunks),
        chars=len(text),
        max_size=max_size,
        seconds=round(timings["chunk"], 4),
    )
    return ChunkingResult(chunks=chunks, timings_s=timings)


# =============================================================================
# Helper Functions
# =============================================================================

def _split_pieces(text: str, max_size: int) -> List[str]:
    stripped = text.strip()
    if not stripped:
        return []
    if len(stripped) <= max_size:
        return [stripped]

    out: List[str] = []
    current = ""

    for sentence in _sentences(text):
        if len((current + sentence).strip()) <= max_size:
            current += sentence
            continue

        if current.strip():
            out.append(current.strip())
        current = ""

        if len(sentence.strip()) > max_size:
            # Leftover words start the next chunk so later sentences can join them
            current = _pack_words(sentence, max_size, out)
        else:
            current = sentence

    if current.strip():
        out.append(current.strip())

    return out


def _sentences(text: str) -> List[str]:
    """Split text into sentences, each ending with its run of terminals."""
    parts = _SENTENCE_SPLIT.split(text)
    sentences: List[str] = []
    for i in range(0, len(parts), 2):
        body = parts[i]
        terminal = parts[i + 1] if i + 1 < len(parts) else ""
        if body or terminal:
            sentences.append(body + terminal)
    return sentences


def _pack_words(sentence: str, max_size: int, out: List[str]) -> str:
    """
    Pack the words of an oversized sentence into out.

    Returns the trailing, not yet emitted, partial chunk.
    """
    current = ""

    for word in _WORD_SPLIT.split(sentence):
        if len((current + word).strip()) <= max_size:
            current += word
            continue

        if current.strip():
            out.append(current.strip())
        current = ""

        if len(word) > max_size:
            for i in range(0, len(word), max_size):
                out.append(word[i:i + max_size])
        else:
            current = word

    return current
