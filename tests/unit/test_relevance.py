"""Unit tests for the relevance engine."""

import asyncio
import math
from unittest.mock import AsyncMock

import pytest

from groundwork.core.relevance import (
    Degraded,
    Empty,
    Fallback,
    Ranked,
    RelevanceEngine,
    cosine_similarity,
    format_for_prompt,
    rank_chunks,
)
from groundwork.entities import KnowledgeChunk, SearchResult
from groundwork.providers.base import EmbeddingProvider, ProviderError
from groundwork.storage.base import StorageError
from groundwork.storage.memory import InMemoryPassageStore

QUERY_VECTOR = [1.0, 0.0]


def unit_vector(similarity: float) -> list[float]:
    """A 2-d unit vector whose cosine with QUERY_VECTOR is ``similarity``."""
    return [similarity, math.sqrt(1 - similarity * similarity)]


def make_chunk(title: str, index: int, similarity: float | None = None, page: int | None = None) -> KnowledgeChunk:
    return KnowledgeChunk(
        id=f"{title}-{index}",
        source_id=title.lower().replace(" ", "-"),
        source_title=title,
        page_number=page,
        chunk_index=index,
        text=f"{title} passage {index}.",
        embedding=unit_vector(similarity) if similarity is not None else None,
    )


async def make_store(*chunks: KnowledgeChunk) -> InMemoryPassageStore:
    store = InMemoryPassageStore()
    await store.initialize()
    for chunk in chunks:
        await store.add_source(chunk.source_id, chunk.source_title)
        await store.add_chunk(chunk)
    return store


@pytest.fixture
def provider():
    provider = AsyncMock(spec=EmbeddingProvider)
    provider.embed_text.return_value = QUERY_VECTOR
    return provider


class TestCosineSimilarity:
    """Test the similarity function."""

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError, match="dimensions differ"):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestRankChunks:
    """Test pure ranking."""

    def test_ties_broken_by_chunk_index_then_title(self):
        chunks = [
            make_chunk("Beta", 2, 0.7),
            make_chunk("Beta", 1, 0.7),
            make_chunk("Alpha", 1, 0.7),
        ]

        results = rank_chunks(QUERY_VECTOR, chunks, top_k=3, min_similarity=0.5)

        assert [r.chunk_id for r in results] == ["Alpha-1", "Beta-1", "Beta-2"]

    def test_skips_unembedded_and_mismatched_chunks(self):
        mismatched = make_chunk("Gamma", 0, 0.9).model_copy(update={"embedding": [1.0, 0.0, 0.0]})
        chunks = [make_chunk("Alpha", 0), mismatched, make_chunk("Beta", 0, 0.6)]

        results = rank_chunks(QUERY_VECTOR, chunks, top_k=5, min_similarity=0.5)

        assert [r.chunk_id for r in results] == ["Beta-0"]


@pytest.mark.asyncio
class TestRelevanceEngineSearch:
    """Test search, fallback and the empty store."""

    async def test_returns_top_k_above_threshold(self, provider):
        """Similarities 0.82/0.61/0.40, top_k=2, floor 0.5 keeps the top two in order."""
        store = await make_store(
            make_chunk("Soil", 0, 0.61),
            make_chunk("Water", 0, 0.40),
            make_chunk("Trees", 0, 0.82),
        )
        engine = RelevanceEngine(provider, store)

        results = await engine.search("fruit trees", top_k=2, min_similarity=0.5)

        assert [r.similarity for r in results] == pytest.approx([0.82, 0.61])
        assert [r.source_title for r in results] == ["Trees", "Soil"]
        assert all(r.ranked for r in results)
        provider.embed_text.assert_awaited_once_with("fruit trees")

    async def test_fallback_when_nothing_clears_threshold(self, provider):
        """Five chunks below the floor, top_k=3: three unranked chunks in title/index order."""
        store = await make_store(
            make_chunk("Water", 1, 0.45),
            make_chunk("Soil", 2, 0.10),
            make_chunk("Water", 0, 0.49),
            make_chunk("Soil", 0, 0.30),
            make_chunk("Animals", 4, 0.20),
        )
        engine = RelevanceEngine(provider, store)

        results = await engine.search("anything", top_k=3, min_similarity=0.5)

        assert [(r.source_title, r.chunk_index) for r in results] == [
            ("Animals", 4),
            ("Soil", 0),
            ("Soil", 2),
        ]
        assert all(not r.ranked and r.similarity == 0.0 for r in results)

    async def test_fallback_when_no_chunk_is_embedded(self, provider):
        store = await make_store(make_chunk("Soil", 1), make_chunk("Soil", 0))
        engine = RelevanceEngine(provider, store)

        outcome = await engine.retrieve("compost", top_k=5)

        assert isinstance(outcome, Fallback)
        assert [r.chunk_index for r in outcome.results] == [0, 1]
        # No embedded chunk means there is nothing to rank against
        provider.embed_text.assert_not_awaited()

    async def test_empty_store(self, provider):
        store = await make_store()
        engine = RelevanceEngine(provider, store)

        assert await engine.search("compost") == []
        assert isinstance(await engine.retrieve("compost"), Empty)
        assert await engine.get_context("compost") == ""

    async def test_results_never_exceed_top_k(self, provider):
        store = await make_store(*[make_chunk("Trees", i, 0.9) for i in range(10)])
        engine = RelevanceEngine(provider, store)

        results = await engine.search("trees", top_k=4)

        assert len(results) == 4
        assert [r.chunk_index for r in results] == [0, 1, 2, 3]

    async def test_search_is_deterministic(self, provider):
        store = await make_store(
            make_chunk("Beta", 0, 0.7),
            make_chunk("Alpha", 0, 0.7),
            make_chunk("Alpha", 1, 0.9),
        )
        engine = RelevanceEngine(provider, store)

        first = await engine.search("q", top_k=3)
        second = await engine.search("q", top_k=3)

        assert first == second

    async def test_uses_engine_defaults(self, provider):
        store = await make_store(make_chunk("Soil", 0, 0.3), make_chunk("Trees", 0, 0.9))
        engine = RelevanceEngine(provider, store, top_k=1, min_similarity=0.2)

        results = await engine.search("q")

        assert [r.source_title for r in results] == ["Trees"]

    @pytest.mark.parametrize(
        "query,top_k,min_similarity",
        [("", 5, 0.5), ("   ", 5, 0.5), ("q", 0, 0.5), ("q", 5, -0.1), ("q", 5, 1.5)],
    )
    async def test_contract_violations_raise(self, provider, query, top_k, min_similarity):
        engine = RelevanceEngine(provider, await make_store(make_chunk("Soil", 0, 0.9)))

        with pytest.raises(ValueError):
            await engine.search(query, top_k=top_k, min_similarity=min_similarity)
        with pytest.raises(ValueError):
            await engine.retrieve(query, top_k=top_k, min_similarity=min_similarity)

    async def test_search_propagates_provider_error(self, provider):
        provider.embed_text.side_effect = ProviderError("boom", provider="mock")
        engine = RelevanceEngine(provider, await make_store(make_chunk("Soil", 0, 0.9)))

        with pytest.raises(ProviderError):
            await engine.search("q")


@pytest.mark.asyncio
class TestRelevanceEngineDegradation:
    """Test that upstream failures degrade instead of raising."""

    async def test_provider_failure_degrades(self, provider):
        provider.embed_text.side_effect = ProviderError("rate limited", provider="mock")
        engine = RelevanceEngine(provider, await make_store(make_chunk("Soil", 0, 0.9)))

        outcome = await engine.retrieve("q")

        assert isinstance(outcome, Degraded)
        assert "rate limited" in outcome.reason
        assert outcome.results == []
        assert await engine.get_context("q") == ""

    async def test_store_failure_degrades(self, provider):
        store = AsyncMock()
        store.list_embedded_chunks.side_effect = StorageError("disk gone", storage_type="sqlite")
        engine = RelevanceEngine(provider, store)

        outcome = await engine.retrieve("q")

        assert isinstance(outcome, Degraded)
        assert await engine.get_context("q") == ""

    async def test_timeout_degrades(self, provider):
        async def slow_embed(text):
            await asyncio.sleep(1)
            return QUERY_VECTOR

        provider.embed_text.side_effect = slow_embed
        engine = RelevanceEngine(provider, await make_store(make_chunk("Soil", 0, 0.9)), timeout=0.01)

        outcome = await engine.retrieve("q")

        assert isinstance(outcome, Degraded)
        assert isinstance(outcome.error, TimeoutError)

    async def test_ranked_outcome(self, provider):
        engine = RelevanceEngine(provider, await make_store(make_chunk("Soil", 0, 0.9)))

        outcome = await engine.retrieve("q")

        assert isinstance(outcome, Ranked)
        assert len(outcome.results) == 1

    async def test_stats_degrade_to_zero(self, provider):
        store = AsyncMock()
        store.get_stats.side_effect = StorageError("locked", storage_type="sqlite")
        engine = RelevanceEngine(provider, store)

        stats = await engine.stats()

        assert stats.total_chunks == 0
        assert stats.embedded_chunks == 0
        assert stats.source_count == 0


class TestFormatForPrompt:
    """Test prompt rendering."""

    def test_empty_results(self):
        assert format_for_prompt([]) == ""

    def test_numbered_blocks_with_pages_and_citation(self):
        results = [
            SearchResult(
                chunk_id="a",
                chunk_text="Swales slow water down.",
                source_title="Water Harvesting",
                page_number=42,
                chunk_index=0,
                similarity=0.82,
                ranked=True,
            ),
            SearchResult(
                chunk_id="b",
                chunk_text="Mulch protects soil.",
                source_title="Soil Basics",
                chunk_index=3,
            ),
        ]

        text = format_for_prompt(results)

        assert "[Source 1: Water Harvesting, page 42 (82% relevant)]\nSwales slow water down." in text
        assert "[Source 2: Soil Basics]\nMulch protects soil." in text
        assert "\n\n---\n\n" in text
        assert text.index("Source 1") < text.index("Source 2")
        assert "cite it by source number" in text
