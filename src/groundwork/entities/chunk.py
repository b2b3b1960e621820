"""KnowledgeChunk entity - a stored passage of a knowledge source."""

import json
import struct
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def decode_embedding(value: Any) -> list[float] | None:
    """Normalize a stored embedding into a list of floats.

    Stores hand embeddings back in several shapes: float32 little-endian
    BLOBs, JSON array strings, or plain sequences. Empty values mean the
    chunk has not been embedded yet.

    Raises:
        ValueError: If the value cannot be interpreted as a vector
    """
    if value is None:
        return None

    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if not raw:
            return None
        if len(raw) % 4 != 0:
            raise ValueError(f"Embedding blob length {len(raw)} is not a multiple of 4")
        return list(struct.unpack(f"<{len(raw) // 4}f", raw))

    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Embedding string is not a JSON array: {e}") from e
        if not isinstance(value, list):
            raise ValueError("Embedding string must decode to a JSON array")

    try:
        vector = [float(x) for x in value]
    except (TypeError, ValueError) as e:
        raise ValueError(f"Embedding must be a sequence of numbers: {e}") from e

    return vector or None


def encode_embedding(vector: list[float]) -> bytes:
    """Pack a vector as a float32 little-endian blob."""
    return struct.pack(f"<{len(vector)}f", *vector)


class KnowledgeChunk(BaseModel):
    """A slice of a knowledge source, independently embeddable and retrievable.

    Chunks without an embedding are skipped by similarity ranking but remain
    eligible for fallback retrieval.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    source_id: str = Field(..., description="Owning knowledge source")
    source_title: str = Field(..., description="Display title of the owning source")
    page_number: int | None = None
    chunk_index: int = Field(..., ge=0, description="Position within the source")
    text: str = Field(..., description="Passage text")
    embedding: list[float] | None = None

    @field_validator("text")
    @classmethod
    def text_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Chunk text cannot be empty")
        return v

    @field_validator("embedding", mode="before")
    @classmethod
    def normalize_embedding(cls, v: Any) -> list[float] | None:
        return decode_embedding(v)

    @property
    def is_embedded(self) -> bool:
        return self.embedding is not None
