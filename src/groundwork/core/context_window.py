"""Context window manager: keep a growing conversation inside a token budget.

Strategy ("sliding window with digest"):
1. Under budget, the history passes through untouched
2. Otherwise the last ``keep_recent_pairs`` user/assistant pairs are kept verbatim
3. Everything older is condensed into a digest carried by the first user
   message of the window, so the result still starts with ``user`` and
   alternates

Example with a 10 message conversation and keep_recent_pairs=2:

    [user: digest of messages 1-6 + message 7]
    [assistant: message 8]
    [user: message 9]
    [assistant: message 10]
"""

from collections.abc import Mapping, Sequence
from typing import Optional, Union

from groundwork.core.summarizers import ConversationSummarizer, HeuristicSummarizer
from groundwork.core.text import DEFAULT_TOPIC_MAX_CHARS
from groundwork.core.tokens import CharacterTokenEstimator, TokenEstimator
from groundwork.entities import CompressionStats, ConversationMessage, ManagedContext, Role
from groundwork.observability.logging import get_logger

logger = get_logger(__name__)

# Leaves room for the system prompt, knowledge context and the reply in an 8k window
DEFAULT_MAX_HISTORY_TOKENS = 6000
DEFAULT_KEEP_RECENT_PAIRS = 3

DIGEST_MARKER = "[Context from earlier in this conversation]"
DIGEST_SEPARATOR = "\n\n---\n\n"

MessageLike = Union[ConversationMessage, Mapping[str, str]]


def _normalize(history: Sequence[MessageLike]) -> list[ConversationMessage]:
    """Coerce dict-shaped messages and reject broken alternation.

    Raises:
        ValueError: If a message is malformed or two consecutive messages share a role
    """
    messages = [
        message if isinstance(message, ConversationMessage) else ConversationMessage.model_validate(message)
        for message in history
    ]

    for i in range(1, len(messages)):
        if messages[i].role == messages[i - 1].role:
            raise ValueError(
                f"Conversation history must alternate roles; messages {i - 1} and {i} "
                f"are both '{messages[i].role.value}'"
            )

    return messages


def _check_limits(max_tokens: int, keep_recent_pairs: int) -> None:
    if max_tokens <= 0:
        raise ValueError(f"max_tokens must be positive, got {max_tokens}")
    if keep_recent_pairs < 1:
        raise ValueError(f"keep_recent_pairs must be >= 1, got {keep_recent_pairs}")


def attach_digest(recent: Sequence[ConversationMessage], digest: str) -> list[ConversationMessage]:
    """Carry ``digest`` on the first message of ``recent``.

    A window that opens with a user turn gets the digest prepended to it.
    Otherwise the digest becomes a synthetic leading user message, which
    keeps the result user-first without dropping verbatim turns.
    """
    block = f"{DIGEST_MARKER}\n\n{digest}"
    managed = list(recent)

    if managed and managed[0].role == Role.USER:
        managed[0] = ConversationMessage(
            role=Role.USER,
            content=f"{block}{DIGEST_SEPARATOR}{managed[0].content}",
        )
    else:
        managed.insert(0, ConversationMessage(role=Role.USER, content=block))

    return managed


class ContextWindowManager:
    """Bounds conversation history to a token budget.

    Stateless between calls; the estimator and summarizer are pluggable.
    ``manage`` always uses the heuristic digest, ``manage_async`` uses the
    configured summarizer.
    """

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_HISTORY_TOKENS,
        keep_recent_pairs: int = DEFAULT_KEEP_RECENT_PAIRS,
        estimator: Optional[TokenEstimator] = None,
        summarizer: Optional[ConversationSummarizer] = None,
        topic_max_chars: int = DEFAULT_TOPIC_MAX_CHARS,
    ):
        """Initialize the manager.

        Raises:
            ValueError: If max_tokens <= 0 or keep_recent_pairs < 1
        """
        _check_limits(max_tokens, keep_recent_pairs)
        self.max_tokens = max_tokens
        self.keep_recent_pairs = keep_recent_pairs
        self.estimator = estimator or CharacterTokenEstimator()
        self.heuristic = HeuristicSummarizer(topic_max_chars)
        self.summarizer = summarizer or self.heuristic

    def manage(
        self,
        history: Sequence[MessageLike],
        max_tokens: Optional[int] = None,
        keep_recent_pairs: Optional[int] = None,
    ) -> ManagedContext:
        """Return a budget-bounded history using the first-sentence digest.

        Raises:
            ValueError: On invalid limits or a history that breaks alternation
        """
        messages, old, recent, original_tokens = self._plan(history, max_tokens, keep_recent_pairs)
        if old is None:
            return self._unchanged(messages, original_tokens)

        return self._compressed(messages, attach_digest(recent, self.heuristic.digest(old)), original_tokens)

    async def manage_async(
        self,
        history: Sequence[MessageLike],
        max_tokens: Optional[int] = None,
        keep_recent_pairs: Optional[int] = None,
    ) -> ManagedContext:
        """Same contract as ``manage`` but digests with the configured summarizer."""
        messages, old, recent, original_tokens = self._plan(history, max_tokens, keep_recent_pairs)
        if old is None:
            return self._unchanged(messages, original_tokens)

        digest = await self.summarizer.summarize(old)
        return self._compressed(messages, attach_digest(recent, digest), original_tokens)

    def _plan(
        self,
        history: Sequence[MessageLike],
        max_tokens: Optional[int],
        keep_recent_pairs: Optional[int],
    ) -> tuple[list[ConversationMessage], Optional[list[ConversationMessage]], list[ConversationMessage], int]:
        """Validate and split history into (all, old, recent, tokens).

        ``old`` is None when the history should pass through unchanged.
        """
        max_tokens = self.max_tokens if max_tokens is None else max_tokens
        keep_recent_pairs = self.keep_recent_pairs if keep_recent_pairs is None else keep_recent_pairs
        _check_limits(max_tokens, keep_recent_pairs)

        messages = _normalize(history)
        original_tokens = self.estimator.estimate_messages(messages)

        if original_tokens <= max_tokens:
            return messages, None, messages, original_tokens

        window_size = keep_recent_pairs * 2
        if len(messages) <= window_size:
            # Nothing older to summarize; cutting recent turns hurts more than overrunning
            logger.warning(
                "history_over_budget_not_compressible",
                messages=len(messages),
                tokens=original_tokens,
                max_tokens=max_tokens,
            )
            return messages, None, messages, original_tokens

        split = len(messages) - window_size
        return messages, messages[:split], messages[split:], original_tokens

    def _unchanged(self, messages: list[ConversationMessage], tokens: int) -> ManagedContext:
        return ManagedContext(
            managed_history=messages,
            was_compressed=False,
            stats=CompressionStats(
                original_messages=len(messages),
                original_tokens=tokens,
                final_messages=len(messages),
                final_tokens=tokens,
                was_compressed=False,
            ),
        )

    def _compressed(
        self,
        messages: list[ConversationMessage],
        managed: list[ConversationMessage],
        original_tokens: int,
    ) -> ManagedContext:
        final_tokens = self.estimator.estimate_messages(managed)
        stats = CompressionStats(
            original_messages=len(messages),
            original_tokens=original_tokens,
            final_messages=len(managed),
            final_tokens=final_tokens,
            was_compressed=True,
        )

        logger.info(
            "conversation_compressed",
            original_messages=stats.original_messages,
            original_tokens=stats.original_tokens,
            final_messages=stats.final_messages,
            final_tokens=stats.final_tokens,
        )

        return ManagedContext(managed_history=managed, was_compressed=True, stats=stats)


def manage_conversation_context(history: Sequence[MessageLike]) -> ManagedContext:
    """Bound ``history`` with the default budget (6000 tokens, 3 recent pairs)."""
    return ContextWindowManager().manage(history)
