"""Small text helpers shared by the prompt context engines."""

import re

_SENTENCE_END = re.compile(r"[.!?]")

DEFAULT_TOPIC_MAX_CHARS = 100


def first_sentence(text: str, max_chars: int = DEFAULT_TOPIC_MAX_CHARS) -> str:
    """Return text up to the first ``.``, ``!`` or ``?``, truncated to ``max_chars``.

    Best effort: text with no terminal punctuation is simply truncated, and
    text that opens with punctuation yields an empty string.
    """
    head = _SENTENCE_END.split(text, maxsplit=1)[0]
    return head[:max_chars].strip()


def percent(value: float) -> str:
    """Format a 0-1 score as a whole percentage."""
    return f"{value * 100:.0f}%"
