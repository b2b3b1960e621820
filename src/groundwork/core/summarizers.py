"""Strategies for condensing older conversation turns into a digest.

The heuristic digest lists the first sentence of each earlier user
message. It is fast and needs no I/O, but it is not a semantic summary.
LLMSummarizer asks a completion model for a real summary instead, trading
latency and cost for quality.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from groundwork.core.text import DEFAULT_TOPIC_MAX_CHARS, first_sentence
from groundwork.entities import ConversationMessage, Role
from groundwork.observability.logging import get_logger
from groundwork.providers.base import LLMProvider, ProviderError

logger = get_logger(__name__)

DIGEST_HEADING = "Earlier in this conversation, the following topics were covered:"
DIGEST_CLOSING = "The conversation above covered these topics. Continue from here with the current question."

SUMMARY_PROMPT = """Summarize this conversation in 3-5 bullet points. Focus on key decisions, recommendations, and topics discussed:

{transcript}

Summary:"""


def build_digest(
    messages: Sequence[ConversationMessage],
    topic_max_chars: int = DEFAULT_TOPIC_MAX_CHARS,
) -> str:
    """Numbered list of the first sentence of every user message."""
    topics = []
    for message in messages:
        if message.role != Role.USER:
            continue
        topic = first_sentence(message.content, topic_max_chars)
        if topic:
            topics.append(topic)

    lines = [DIGEST_HEADING]
    lines.extend(f"{i}. {topic}" for i, topic in enumerate(topics, 1))
    return "\n".join(lines) + f"\n\n{DIGEST_CLOSING}"


class ConversationSummarizer(ABC):
    """Turns the older part of a history into a digest string."""

    @abstractmethod
    async def summarize(self, messages: Sequence[ConversationMessage]) -> str:
        pass


class HeuristicSummarizer(ConversationSummarizer):
    """First-sentence digest; deterministic and I/O free."""

    def __init__(self, topic_max_chars: int = DEFAULT_TOPIC_MAX_CHARS) -> None:
        if topic_max_chars <= 0:
            raise ValueError(f"topic_max_chars must be positive, got {topic_max_chars}")
        self.topic_max_chars = topic_max_chars

    def digest(self, messages: Sequence[ConversationMessage]) -> str:
        return build_digest(messages, self.topic_max_chars)

    async def summarize(self, messages: Sequence[ConversationMessage]) -> str:
        return self.digest(messages)


class LLMSummarizer(ConversationSummarizer):
    """Summarizes earlier turns with a completion model.

    A failed or empty completion falls back to the heuristic digest so a
    summarization problem never blocks the conversation.
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        max_tokens: int = 200,
        fallback: HeuristicSummarizer | None = None,
    ) -> None:
        self.llm_provider = llm_provider
        self.max_tokens = max_tokens
        self.fallback = fallback or HeuristicSummarizer()

    async def summarize(self, messages: Sequence[ConversationMessage]) -> str:
        transcript = "\n\n".join(
            f"{message.role.value.upper()}: {message.content}" for message in messages
        )

        try:
            summary = await self.llm_provider.generate(
                prompt=SUMMARY_PROMPT.format(transcript=transcript),
                max_tokens=self.max_tokens,
                temperature=0.3,
            )
        except ProviderError as e:
            logger.warning("llm_summary_failed", provider=e.provider, error=e.message)
            return self.fallback.digest(messages)

        summary = summary.strip()
        if not summary:
            logger.warning("llm_summary_empty")
            return self.fallback.digest(messages)

        return f"Summary of the earlier conversation:\n{summary}\n\n{DIGEST_CLOSING}"
