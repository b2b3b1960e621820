"""Embedding pipeline: backfill embeddings for chunks that lack one.

Why this exists:
- Chunks can be stored before an embedding provider is available
- Until embedded, they only reach prompts through fallback retrieval

How to use:
    from groundwork.pipelines.embedding import EmbeddingPipeline

    pipeline = EmbeddingPipeline(embedding_provider, store, model_name="text-embedding-3-small")
    result = await pipeline.process_unembedded(limit=100)
"""

from dataclasses import dataclass

from groundwork.observability.logging import get_logger
from groundwork.providers.base import EmbeddingProvider, ProviderError
from groundwork.storage.base import PassageStore, StorageError

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 100


@dataclass
class EmbeddingRunResult:
    """Outcome of one backfill run."""

    processed: int = 0
    failed: int = 0


class EmbeddingPipeline:
    """Embeds pending chunks in batches and writes the vectors back."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        store: PassageStore,
        model_name: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.embedding_provider = embedding_provider
        self.store = store
        self.model_name = model_name
        self.batch_size = batch_size

    async def process_unembedded(self, limit: int = DEFAULT_BATCH_SIZE) -> EmbeddingRunResult:
        """Embed up to ``limit`` chunks that have no embedding yet.

        A batch the provider rejects is counted as failed and the run moves
        on; a chunk that cannot be written back is counted individually.

        Raises:
            StorageError: If pending chunks cannot be listed
        """
        result = EmbeddingRunResult()
        pending = await self.store.list_unembedded_chunks(limit)

        if not pending:
            logger.info("no_chunks_need_embeddings")
            return result

        logger.info("embedding_started", chunk_count=len(pending), batch_size=self.batch_size)

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start : start + self.batch_size]

            try:
                vectors = await self.embedding_provider.embed_batch([chunk.text for chunk in batch])
            except ProviderError as e:
                logger.error("embedding_batch_failed", batch_start=start, size=len(batch), error=e.message)
                result.failed += len(batch)
                continue

            for chunk, vector in zip(batch, vectors):
                try:
                    if await self.store.update_embedding(chunk.id, vector, self.model_name):
                        result.processed += 1
                    else:
                        result.failed += 1
                except StorageError as e:
                    logger.error("embedding_save_failed", chunk_id=chunk.id, error=e.message)
                    result.failed += 1

        logger.info("embedding_completed", processed=result.processed, failed=result.failed)
        return result
