"""Provider abstractions: embeddings and LLM backends."""

from groundwork.providers.base import EmbeddingProvider, LLMProvider, ProviderConfig, ProviderError


def create_embedding_provider(config: ProviderConfig) -> EmbeddingProvider:
    """Factory function to create embedding providers based on configuration.

    Args:
        config: Provider configuration with provider_type

    Returns:
        Initialized embedding provider

    Raises:
        ValueError: If provider_type is unknown
        ProviderError: If provider initialization fails or dependencies are missing

    Example:
        config = ProviderConfig(
            provider_type="openai",
            model_name="text-embedding-3-small",
            api_key="OPENAI_API_KEY",
        )
        provider = create_embedding_provider(config)
    """
    provider_type = config.provider_type.lower()

    if provider_type == "local":
        try:
            from groundwork.providers.local import LocalEmbeddingProvider

            return LocalEmbeddingProvider(config)
        except ImportError as e:
            raise ProviderError(
                message=(
                    "Local embedding provider requires sentence-transformers. "
                    "Install with: pip install 'groundwork[local]'"
                ),
                provider="local",
                original_error=e,
            )

    elif provider_type == "openai":
        from groundwork.providers.openai import OpenAIEmbeddingProvider

        return OpenAIEmbeddingProvider(config)

    else:
        raise ValueError(
            f"Unknown embedding provider type: '{provider_type}'. "
            f"Supported types: local, openai"
        )


def create_llm_provider(config: ProviderConfig) -> LLMProvider:
    """Factory function to create chat completion providers.

    Raises:
        ValueError: If provider_type is unknown
    """
    provider_type = config.provider_type.lower()

    if provider_type == "openai":
        from groundwork.providers.openai_llm import OpenAILLMProvider

        return OpenAILLMProvider(config)

    raise ValueError(
        f"Unknown LLM provider type: '{provider_type}'. Supported types: openai"
    )


__all__ = [
    "EmbeddingProvider",
    "LLMProvider",
    "ProviderConfig",
    "ProviderError",
    "create_embedding_provider",
    "create_llm_provider",
]
