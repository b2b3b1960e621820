"""Token estimation for context budgeting.

Estimates are deliberately approximate: real tokenization varies by model,
and the context window manager only needs a budget guard. Swap in a more
accurate TokenEstimator without touching the windowing logic.
"""

import math
from abc import ABC, abstractmethod
from collections.abc import Iterable

from groundwork.entities import ConversationMessage

# Rough average across common chat models
DEFAULT_CHARS_PER_TOKEN = 4


class TokenEstimator(ABC):
    """Counts model input units for text."""

    @abstractmethod
    def estimate(self, text: str) -> int:
        """Estimate tokens for a single string."""
        pass

    def estimate_messages(self, messages: Iterable[ConversationMessage]) -> int:
        """Sum of estimates over message contents."""
        return sum(self.estimate(message.content) for message in messages)


class CharacterTokenEstimator(TokenEstimator):
    """``ceil(len(text) / chars_per_token)``."""

    def __init__(self, chars_per_token: int = DEFAULT_CHARS_PER_TOKEN) -> None:
        if chars_per_token <= 0:
            raise ValueError(f"chars_per_token must be positive, got {chars_per_token}")
        self.chars_per_token = chars_per_token

    def estimate(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)


_default_estimator = CharacterTokenEstimator()


def estimate_tokens(text: str) -> int:
    """Estimate tokens for text with the default heuristic."""
    return _default_estimator.estimate(text)


def estimate_total_tokens(messages: Iterable[ConversationMessage]) -> int:
    """Estimate tokens for a whole history with the default heuristic."""
    return _default_estimator.estimate_messages(messages)
