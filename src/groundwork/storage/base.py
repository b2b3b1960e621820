"""Abstract base class for passage storage backends.

Why this exists:
- The relevance engine reads knowledge passages through one narrow interface
- Backends normalize their row shapes into KnowledgeChunk at this boundary
- Enables testing with an in-memory implementation

How to extend:
1. Subclass PassageStore
2. Implement all abstract methods
3. Register in create_passage_store
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from groundwork.entities import KnowledgeBaseStats, KnowledgeChunk


class StorageConfig(BaseModel):
    """Base configuration for storage backends."""

    store_type: str
    connection_string: str | None = None
    extra_params: dict[str, Any] = Field(default_factory=dict)


class PassageStore(ABC):
    """Abstract interface for knowledge passage storage.

    The prompt context pipeline only reads from it; the write methods
    exist for ingestion and embedding backfill.
    """

    def __init__(self, config: StorageConfig) -> None:
        """Initialize storage with configuration."""
        self.config = config

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the store (open connections, create tables)."""
        pass

    @abstractmethod
    async def add_source(self, source_id: str, title: str, filename: str | None = None) -> None:
        """Register a knowledge source (a book, article or document)."""
        pass

    @abstractmethod
    async def add_chunk(self, chunk: KnowledgeChunk) -> None:
        """Store a chunk; its source must already be registered.

        Raises:
            StorageError: If the source is unknown or the write fails
        """
        pass

    @abstractmethod
    async def list_embedded_chunks(self) -> list[KnowledgeChunk]:
        """Return every chunk that has an embedding."""
        pass

    @abstractmethod
    async def list_chunks(self, limit: int) -> list[KnowledgeChunk]:
        """Return up to ``limit`` chunks, embedded or not.

        Ordered by (source_title, chunk_index) so the result is deterministic.
        """
        pass

    @abstractmethod
    async def list_unembedded_chunks(self, limit: int) -> list[KnowledgeChunk]:
        """Return up to ``limit`` chunks that still need an embedding."""
        pass

    @abstractmethod
    async def delete_chunks(self, source_id: str) -> int:
        """Delete every chunk of a source so it can be re-ingested.

        Returns:
            Number of chunks deleted
        """
        pass

    @abstractmethod
    async def update_embedding(self, chunk_id: str, vector: list[float], model: str) -> bool:
        """Attach an embedding to a chunk.

        Returns:
            True if the chunk exists and was updated, False otherwise
        """
        pass

    @abstractmethod
    async def get_stats(self) -> KnowledgeBaseStats:
        """Return chunk and source counts."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connections and cleanup resources."""
        pass

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class StorageError(Exception):
    """Base exception for storage errors."""

    def __init__(self, message: str, storage_type: str, original_error: Exception | None = None):
        self.message = message
        self.storage_type = storage_type
        self.original_error = original_error
        super().__init__(self.message)
