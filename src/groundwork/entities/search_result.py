"""SearchResult entity - a passage selected for inclusion in a prompt."""

from pydantic import BaseModel, Field

from groundwork.entities.chunk import KnowledgeChunk


class SearchResult(BaseModel):
    """A retrieved passage.

    ``similarity`` is only meaningful when ``ranked`` is True; fallback
    results carry a similarity of 0.0.
    """

    chunk_id: str
    chunk_text: str
    source_title: str
    page_number: int | None = None
    chunk_index: int = Field(..., ge=0)
    similarity: float = 0.0
    ranked: bool = False

    @classmethod
    def from_chunk(cls, chunk: KnowledgeChunk, similarity: float | None = None) -> "SearchResult":
        """Build a result from a chunk; omit ``similarity`` for fallback results."""
        return cls(
            chunk_id=chunk.id,
            chunk_text=chunk.text,
            source_title=chunk.source_title,
            page_number=chunk.page_number,
            chunk_index=chunk.chunk_index,
            similarity=similarity if similarity is not None else 0.0,
            ranked=similarity is not None,
        )
