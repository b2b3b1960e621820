"""Component construction from AppConfig."""

from typing import Optional

from groundwork.config.schema import AppConfig, SummarizerType
from groundwork.core.context_window import ContextWindowManager
from groundwork.core.summarizers import HeuristicSummarizer, LLMSummarizer
from groundwork.core.tokens import CharacterTokenEstimator
from groundwork.pipelines.ingestion import IngestionPipeline
from groundwork.providers import create_embedding_provider, create_llm_provider
from groundwork.providers.base import EmbeddingProvider, LLMProvider, ProviderConfig
from groundwork.storage import PassageStore, StorageConfig, create_passage_store


async def initialize_store(config: AppConfig) -> PassageStore:
    """Create and initialize the configured passage store."""
    store = create_passage_store(
        StorageConfig(
            store_type=config.passage_store.store_type.value,
            connection_string=config.passage_store.connection_string,
            extra_params=config.passage_store.extra_params,
        )
    )
    await store.initialize()
    return store


def build_embedding_provider(config: AppConfig) -> EmbeddingProvider:
    """Create the configured embedding provider."""
    return create_embedding_provider(
        ProviderConfig(
            provider_type=config.embedding.provider.value,
            model_name=config.embedding.model_name,
            api_key=config.embedding.api_key,
            timeout=config.embedding.timeout,
            extra_params=config.embedding.extra_params,
        )
    )


def build_llm_provider(config: AppConfig) -> LLMProvider:
    """Create the configured chat completion provider."""
    return create_llm_provider(
        ProviderConfig(
            provider_type=config.llm.provider.value,
            model_name=config.llm.model_name,
            api_key=config.llm.api_key,
            timeout=config.llm.timeout,
            extra_params=config.llm.extra_params,
        )
    )


def build_context_manager(
    config: AppConfig,
    llm_provider: Optional[LLMProvider] = None,
) -> ContextWindowManager:
    """Create a context window manager from ``config.context_window``.

    The LLM summarizer is only used when configured and a provider is given.
    """
    settings = config.context_window
    summarizer = None
    if settings.summarizer == SummarizerType.LLM and llm_provider is not None:
        summarizer = LLMSummarizer(llm_provider, fallback=HeuristicSummarizer(settings.topic_max_chars))

    return ContextWindowManager(
        max_tokens=settings.max_history_tokens,
        keep_recent_pairs=settings.keep_recent_pairs,
        estimator=CharacterTokenEstimator(settings.chars_per_token),
        summarizer=summarizer,
        topic_max_chars=settings.topic_max_chars,
    )


def build_ingestion_pipeline(config: AppConfig, store: PassageStore) -> IngestionPipeline:
    """Create an ingestion pipeline with the configured chunk sizes."""
    return IngestionPipeline(
        store,
        chunk_size=config.chunking.chunk_size,
        chunk_overlap=config.chunking.chunk_overlap,
        min_chunk_size=config.chunking.min_chunk_size,
    )
