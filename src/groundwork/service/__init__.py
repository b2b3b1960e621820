"""Service layer - build configured components.

- initialize_store: Passage store from configuration, ready to use
- build_embedding_provider / build_llm_provider: Providers from configuration
- build_context_manager: Context window manager with the configured summarizer
- build_ingestion_pipeline: Ingestion pipeline with the configured chunk sizes
"""

from groundwork.service.components import (
    build_context_manager,
    build_embedding_provider,
    build_ingestion_pipeline,
    build_llm_provider,
    initialize_store,
)

__all__ = [
    "build_context_manager",
    "build_embedding_provider",
    "build_ingestion_pipeline",
    "build_llm_provider",
    "initialize_store",
]
