"""KnowledgeBaseStats entity - counts describing the passage store."""

from pydantic import BaseModel, Field


class KnowledgeBaseStats(BaseModel):
    """Passage store counts, used for status displays."""

    total_chunks: int = Field(default=0, ge=0)
    embedded_chunks: int = Field(default=0, ge=0)
    source_count: int = Field(default=0, ge=0)
