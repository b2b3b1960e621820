"""Prompt assembly: system instructions + knowledge + bounded history + new turn.

How to use:
    from groundwork.pipelines.prompt import PromptAssembler

    assembler = PromptAssembler(relevance_engine, context_manager, system_prompt)
    messages = await assembler.build_messages(history, "Which plants fix nitrogen?")
    reply = await assembler.answer(history, "Which plants fix nitrogen?", llm_provider)
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from groundwork.core.context_window import ContextWindowManager, MessageLike
from groundwork.core.relevance import RelevanceEngine
from groundwork.entities import CompressionStats
from groundwork.observability.logging import get_logger
from groundwork.providers.base import LLMProvider

logger = get_logger(__name__)


@dataclass
class AssembledPrompt:
    """Role-tagged messages ready for a chat completion call."""

    messages: list[dict[str, str]]
    knowledge_included: bool
    history_stats: CompressionStats


class PromptAssembler:
    """Combines both engines into one chat completion request."""

    def __init__(
        self,
        relevance_engine: RelevanceEngine,
        context_manager: ContextWindowManager,
        system_prompt: str,
    ):
        self.relevance_engine = relevance_engine
        self.context_manager = context_manager
        self.system_prompt = system_prompt

    async def build_messages(
        self,
        history: Sequence[MessageLike],
        user_message: str,
        top_k: Optional[int] = None,
    ) -> AssembledPrompt:
        """Assemble the prompt for ``user_message``.

        Knowledge retrieval failures only drop the knowledge section.

        Raises:
            ValueError: If ``history`` breaks alternation or ``user_message`` is empty
        """
        if not user_message or not user_message.strip():
            raise ValueError("user_message must be a non-empty string")

        knowledge = await self.relevance_engine.get_context(user_message, top_k=top_k)
        managed = await self.context_manager.manage_async(history)

        system_content = self.system_prompt
        if knowledge:
            system_content = f"{system_content}\n\n{knowledge}"

        messages = [{"role": "system", "content": system_content}]
        messages.extend(message.to_dict() for message in managed.managed_history)
        messages.append({"role": "user", "content": user_message})

        logger.info(
            "prompt_assembled",
            message_count=len(messages),
            knowledge_included=bool(knowledge),
            history_compressed=managed.was_compressed,
        )

        return AssembledPrompt(
            messages=messages,
            knowledge_included=bool(knowledge),
            history_stats=managed.stats,
        )

    async def answer(
        self,
        history: Sequence[MessageLike],
        user_message: str,
        llm_provider: LLMProvider,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
        top_k: Optional[int] = None,
    ) -> str:
        """Assemble the prompt and return the model's reply.

        Raises:
            ProviderError: If the completion call fails
        """
        prompt = await self.build_messages(history, user_message, top_k=top_k)
        return await llm_provider.chat(prompt.messages, max_tokens=max_tokens, temperature=temperature)
