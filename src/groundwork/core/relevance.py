"""Relevance engine: pick the knowledge passages worth injecting into a prompt.

Why this exists:
- Ranks stored passages against a query by cosine similarity
- Falls back to a deterministic selection when nothing clears the bar
- Makes the "degrade, never abort" retrieval policy an explicit outcome

How to use:
    from groundwork.core.relevance import RelevanceEngine

    engine = RelevanceEngine(embedding_provider, store)
    context = await engine.get_context("When should I prune apple trees?")
"""

import asyncio
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional, Union

from groundwork.core.text import percent
from groundwork.entities import KnowledgeBaseStats, KnowledgeChunk, SearchResult
from groundwork.observability.logging import get_logger
from groundwork.providers.base import EmbeddingProvider
from groundwork.storage.base import PassageStore

logger = get_logger(__name__)

DEFAULT_TOP_K = 5
DEFAULT_MIN_SIMILARITY = 0.5

SOURCE_SEPARATOR = "\n\n---\n\n"

CONTEXT_HEADING = "Here is relevant information from the knowledge base:"

CITATION_INSTRUCTION = (
    "When you use this information, cite it by source number "
    '(e.g. "According to Source 1...") and include the page where one is given, '
    "so the user can verify it in their own copy."
)


@dataclass(frozen=True)
class Ranked:
    """Similarity ranking produced qualifying results."""

    results: list[SearchResult]


@dataclass(frozen=True)
class Fallback:
    """Nothing cleared the similarity floor; results are unranked."""

    results: list[SearchResult]


@dataclass(frozen=True)
class Empty:
    """The store holds no passages at all."""

    results: list[SearchResult] = field(default_factory=list)


@dataclass(frozen=True)
class Degraded:
    """Retrieval failed upstream; the prompt goes out without knowledge context."""

    reason: str
    error: Optional[BaseException] = None
    results: list[SearchResult] = field(default_factory=list)


RetrievalOutcome = Union[Ranked, Fallback, Empty, Degraded]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors.

    Zero-magnitude vectors score 0.0.

    Raises:
        ValueError: If the vectors differ in dimension
    """
    if len(a) != len(b):
        raise ValueError(f"Vector dimensions differ: {len(a)} != {len(b)}")

    dot_product = sum(x * y for x, y in zip(a, b))
    magnitude_a = math.sqrt(sum(x * x for x in a))
    magnitude_b = math.sqrt(sum(y * y for y in b))

    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    return dot_product / (magnitude_a * magnitude_b)


def rank_chunks(
    query_vector: Sequence[float],
    chunks: Sequence[KnowledgeChunk],
    top_k: int,
    min_similarity: float,
) -> list[SearchResult]:
    """Score embedded chunks against the query and keep the best ``top_k``.

    Ties are broken by chunk_index, then source_title, then chunk id, so
    identical inputs always produce identical output.
    """
    scored: list[SearchResult] = []
    mismatched = 0

    for chunk in chunks:
        if chunk.embedding is None:
            continue
        if len(chunk.embedding) != len(query_vector):
            mismatched += 1
            continue
        similarity = cosine_similarity(query_vector, chunk.embedding)
        if similarity >= min_similarity:
            scored.append(SearchResult.from_chunk(chunk, similarity=similarity))

    if mismatched:
        logger.warning(
            "embedding_dimension_mismatch",
            skipped_chunks=mismatched,
            query_dimension=len(query_vector),
        )

    scored.sort(key=lambda r: (-r.similarity, r.chunk_index, r.source_title, r.chunk_id))
    return scored[:top_k]


def format_for_prompt(results: Sequence[SearchResult]) -> str:
    """Render results as numbered source blocks for a model prompt.

    Returns an empty string for no results so callers can omit the section.
    """
    if not results:
        return ""

    blocks = []
    for i, result in enumerate(results, 1):
        label = f"Source {i}: {result.source_title}"
        if result.page_number is not None:
            label += f", page {result.page_number}"
        if result.ranked:
            label += f" ({percent(result.similarity)} relevant)"
        blocks.append(f"[{label}]\n{result.chunk_text.strip()}")

    return f"{CONTEXT_HEADING}\n\n{SOURCE_SEPARATOR.join(blocks)}\n\n{CITATION_INSTRUCTION}"


def _validate_limits(top_k: int, min_similarity: float) -> None:
    if top_k < 1:
        raise ValueError(f"top_k must be >= 1, got {top_k}")
    if not 0.0 <= min_similarity <= 1.0:
        raise ValueError(f"min_similarity must be within [0, 1], got {min_similarity}")


def _validate_search_args(query: str, top_k: int, min_similarity: float) -> None:
    if not query or not query.strip():
        raise ValueError("query must be a non-empty string")
    _validate_limits(top_k, min_similarity)


class RelevanceEngine:
    """Selects knowledge passages for a query.

    Holds no state between calls beyond its injected collaborators, so one
    instance can serve any number of concurrent requests.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        store: PassageStore,
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        timeout: Optional[float] = None,
    ):
        """Initialize the engine.

        Args:
            embedding_provider: Embeds the query; must match the store's model
            store: Read-only source of knowledge chunks
            top_k: Default number of passages to return
            min_similarity: Default similarity floor for ranked results
            timeout: Optional overall deadline in seconds for store and provider I/O
        """
        _validate_limits(top_k, min_similarity)
        self.embedding_provider = embedding_provider
        self.store = store
        self.top_k = top_k
        self.min_similarity = min_similarity
        self.timeout = timeout

    async def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> list[SearchResult]:
        """Rank passages for a query, falling back to unranked ones.

        Returns at most ``top_k`` results: either all ranked with
        ``similarity >= min_similarity``, or all fallback results ordered by
        (source_title, chunk_index). An empty store yields ``[]``.

        Raises:
            ValueError: If the arguments violate the contract
            ProviderError: If the query cannot be embedded
            StorageError: If the store cannot be read
        """
        outcome = await self._search(query, top_k, min_similarity)
        return outcome.results

    async def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> RetrievalOutcome:
        """Search, converting upstream failures into a Degraded outcome.

        Contract violations still raise ValueError; they are caller bugs.
        """
        top_k = self.top_k if top_k is None else top_k
        min_similarity = self.min_similarity if min_similarity is None else min_similarity
        _validate_search_args(query, top_k, min_similarity)

        try:
            return await self._search(query, top_k, min_similarity)
        except Exception as e:
            logger.warning(
                "knowledge_retrieval_degraded",
                error=str(e),
                error_type=type(e).__name__,
                query=query[:50],
            )
            return Degraded(reason=f"{type(e).__name__}: {e}", error=e)

    async def get_context(self, query: str, top_k: Optional[int] = None) -> str:
        """Return formatted knowledge context for a prompt, or ``""``.

        Never raises for upstream failures; a retrieval hiccup only costs
        the answer its grounding.
        """
        outcome = await self.retrieve(query, top_k=top_k)
        return format_for_prompt(outcome.results)

    async def stats(self) -> KnowledgeBaseStats:
        """Return store counts, or zeros if the store cannot be read."""
        try:
            return await self.store.get_stats()
        except Exception as e:
            logger.warning("knowledge_stats_unavailable", error=str(e))
            return KnowledgeBaseStats()

    async def _search(
        self,
        query: str,
        top_k: Optional[int],
        min_similarity: Optional[float],
    ) -> RetrievalOutcome:
        top_k = self.top_k if top_k is None else top_k
        min_similarity = self.min_similarity if min_similarity is None else min_similarity
        _validate_search_args(query, top_k, min_similarity)

        async with asyncio.timeout(self.timeout):
            return await self._rank_or_fallback(query, top_k, min_similarity)

    async def _rank_or_fallback(self, query: str, top_k: int, min_similarity: float) -> RetrievalOutcome:
        logger.info("search_started", query=query[:50], top_k=top_k, min_similarity=min_similarity)

        chunks = await self.store.list_embedded_chunks()
        if chunks:
            query_vector = await self.embedding_provider.embed_text(query)
            ranked = rank_chunks(query_vector, chunks, top_k, min_similarity)
            if ranked:
                logger.info(
                    "search_completed",
                    candidate_count=len(chunks),
                    result_count=len(ranked),
                    top_similarity=round(ranked[0].similarity, 4),
                )
                return Ranked(ranked)
            logger.info("no_chunk_above_threshold", candidate_count=len(chunks))
        else:
            logger.info("no_embedded_chunks")

        fallback = await self.store.list_chunks(limit=top_k)
        if not fallback:
            logger.info("knowledge_store_empty")
            return Empty()

        logger.info("fallback_retrieval_used", result_count=len(fallback))
        return Fallback([SearchResult.from_chunk(chunk) for chunk in fallback])
