"""Entities - request-scoped value objects for the prompt context pipeline.

This module contains pure domain entities without business logic:
- KnowledgeChunk: A stored passage of a knowledge source, optionally embedded
- SearchResult: A passage selected for a prompt, ranked or fallback
- ConversationMessage: One turn of a chat thread
- CompressionStats / ManagedContext: Output of the context window manager
- KnowledgeBaseStats: Counts describing the passage store
"""

from groundwork.entities.chunk import KnowledgeChunk, decode_embedding, encode_embedding
from groundwork.entities.message import (
    CompressionStats,
    ConversationMessage,
    ManagedContext,
    Role,
)
from groundwork.entities.search_result import SearchResult
from groundwork.entities.stats import KnowledgeBaseStats

__all__ = [
    "CompressionStats",
    "ConversationMessage",
    "KnowledgeBaseStats",
    "KnowledgeChunk",
    "ManagedContext",
    "Role",
    "SearchResult",
    "decode_embedding",
    "encode_embedding",
]
