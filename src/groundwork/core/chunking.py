"""Text chunking for knowledge passages.

Why this exists:
- Splits source text into embedding-sized passages
- Overlaps neighbouring passages so a fact cut at a boundary survives in one of them
- Prefers sentence ends, then word boundaries, over hard cuts

How to use:
    from groundwork.core.chunking import chunk_text

    for text, start, end in chunk_text(page_text):
        ...
"""

import re
from collections.abc import Iterator

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200
DEFAULT_MIN_CHUNK_SIZE = 100

_WHITESPACE = re.compile(r"\s+")
_SENTENCE_ENDINGS = (". ", "! ", "? ")


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to a single space."""
    return _WHITESPACE.sub(" ", text).strip()


def _last_sentence_end(text: str, start: int, end: int) -> int:
    """Index just past the last sentence ending in ``text[start:end]``, or -1."""
    last = -1
    for ending in _SENTENCE_ENDINGS:
        pos = text.rfind(ending, start, end)
        if pos != -1:
            last = max(last, pos + len(ending))
    return last


def validate_chunk_sizes(chunk_size: int, chunk_overlap: int, min_chunk_size: int) -> None:
    """Raise ValueError unless 0 <= overlap < size and 0 <= min size <= size."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError(f"chunk_overlap must be within [0, chunk_size), got {chunk_overlap}")
    if not 0 <= min_chunk_size <= chunk_size:
        raise ValueError(f"min_chunk_size must be within [0, chunk_size], got {min_chunk_size}")


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE,
) -> Iterator[tuple[str, int, int]]:
    """Split text into overlapping passages.

    Whitespace is normalized first, so offsets refer to the normalized text.
    A window is cut at its last sentence ending, or failing that its last
    space, as long as the cut leaves more than ``min_chunk_size`` characters.
    Passages shorter than ``min_chunk_size`` are dropped unless they end the
    text.

    Args:
        text: Text to chunk
        chunk_size: Target passage size in characters
        chunk_overlap: Characters shared by consecutive passages
        min_chunk_size: Minimum passage size

    Yields:
        Tuples of (passage_text, start_char, end_char)

    Raises:
        ValueError: If the sizes are inconsistent
    """
    validate_chunk_sizes(chunk_size, chunk_overlap, min_chunk_size)

    normalized = normalize_whitespace(text)
    length = len(normalized)
    start = 0

    while start < length:
        end = min(start + chunk_size, length)

        if end < length:
            sentence_end = _last_sentence_end(normalized, start, end)
            if sentence_end > start + min_chunk_size:
                end = sentence_end
            else:
                word_end = normalized.rfind(" ", start, end + 1)
                if word_end > start + min_chunk_size:
                    end = word_end

        chunk = normalized[start:end].strip()
        if chunk and (len(chunk) >= min_chunk_size or end == length):
            yield (chunk, start, end)

        if end == length:
            break

        next_start = end - chunk_overlap
        # Overlap larger than the cut would step backwards
        start = next_start if next_start > start else end
