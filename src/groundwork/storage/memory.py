"""In-memory passage store for tests and development.

Holds everything in dictionaries; nothing survives the process.
"""

from groundwork.entities import KnowledgeBaseStats, KnowledgeChunk
from groundwork.storage.base import PassageStore, StorageConfig, StorageError


def _fallback_order(chunk: KnowledgeChunk) -> tuple:
    return (chunk.source_title, chunk.chunk_index, chunk.id)


class InMemoryPassageStore(PassageStore):
    """In-memory passage store implementation."""

    def __init__(self, config: StorageConfig | None = None) -> None:
        super().__init__(config or StorageConfig(store_type="memory"))
        self.sources: dict[str, str] = {}
        self.chunks: dict[str, KnowledgeChunk] = {}

    async def initialize(self) -> None:
        pass

    async def add_source(self, source_id: str, title: str, filename: str | None = None) -> None:
        self.sources[source_id] = title

    async def add_chunk(self, chunk: KnowledgeChunk) -> None:
        if chunk.source_id not in self.sources:
            raise StorageError(
                f"Unknown knowledge source: {chunk.source_id}",
                storage_type="memory",
            )
        self.chunks[chunk.id] = chunk

    async def list_embedded_chunks(self) -> list[KnowledgeChunk]:
        return [chunk for chunk in self.chunks.values() if chunk.is_embedded]

    async def list_chunks(self, limit: int) -> list[KnowledgeChunk]:
        return sorted(self.chunks.values(), key=_fallback_order)[:limit]

    async def list_unembedded_chunks(self, limit: int) -> list[KnowledgeChunk]:
        pending = [chunk for chunk in self.chunks.values() if not chunk.is_embedded]
        return sorted(pending, key=_fallback_order)[:limit]

    async def delete_chunks(self, source_id: str) -> int:
        doomed = [chunk_id for chunk_id, chunk in self.chunks.items() if chunk.source_id == source_id]
        for chunk_id in doomed:
            del self.chunks[chunk_id]
        return len(doomed)

    async def update_embedding(self, chunk_id: str, vector: list[float], model: str) -> bool:
        chunk = self.chunks.get(chunk_id)
        if chunk is None:
            return False
        self.chunks[chunk_id] = chunk.model_copy(update={"embedding": list(vector)})
        return True

    async def get_stats(self) -> KnowledgeBaseStats:
        return KnowledgeBaseStats(
            total_chunks=len(self.chunks),
            embedded_chunks=sum(1 for chunk in self.chunks.values() if chunk.is_embedded),
            source_count=len(self.sources),
        )

    async def close(self) -> None:
        self.sources.clear()
        self.chunks.clear()
