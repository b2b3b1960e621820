"""Abstract base classes for embedding and LLM providers.

Why this exists:
- Allows swapping between embedding models (OpenAI-compatible APIs, local)
- Enables testing with mock providers
- Provides stable interface as providers evolve

How to extend:
1. Subclass EmbeddingProvider or LLMProvider
2. Implement all abstract methods
3. Register in the factory functions in groundwork.providers
4. Add optional dependencies to pyproject.toml
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field


class ProviderConfig(BaseModel):
    """Base configuration for all providers."""

    provider_type: str
    model_name: str
    api_key: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)
    extra_params: dict[str, Any] = Field(default_factory=dict)


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers.

    Implementations must handle:
    - Single text embedding (query side)
    - Batch text embedding (chunk backfill)
    - Model metadata (dimension)
    """

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize provider with configuration."""
        self.config = config

    @abstractmethod
    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Input text to embed

        Returns:
            Embedding vector

        Raises:
            ProviderError: If embedding generation fails
        """
        pass

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Args:
            texts: List of input texts

        Returns:
            List of embedding vectors, in input order

        Raises:
            ProviderError: If embedding generation fails
        """
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the embedding dimension for this model."""
        pass

    async def close(self) -> None:
        """Release clients and model resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class LLMProvider(ABC):
    """Abstract interface for chat completion providers."""

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize provider with configuration."""
        self.config = config

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> str:
        """Complete a role-tagged message list.

        Args:
            messages: Messages shaped ``{"role": ..., "content": ...}``
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            Generated text

        Raises:
            ProviderError: If generation fails
        """
        pass

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> str:
        """Generate a completion for a single prompt."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return await self.chat(messages, max_tokens=max_tokens, temperature=temperature)

    @abstractmethod
    def count_tokens(self, text: str) -> int:
        """Count tokens in text for this model."""
        pass

    async def close(self) -> None:
        """Release HTTP clients."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, provider: str, original_error: Optional[Exception] = None):
        self.message = message
        self.provider = provider
        self.original_error = original_error
        super().__init__(self.message)


class UnavailableEmbeddingProvider(EmbeddingProvider):
    """Stands in for a provider that could not be built.

    Every embedding call re-raises the construction error, so retrieval
    degrades through its normal error path. Fallback retrieval, which
    never embeds, keeps working.
    """

    def __init__(self, config: ProviderConfig, error: ProviderError) -> None:
        super().__init__(config)
        self.error = error

    async def embed_text(self, text: str) -> list[float]:
        raise self.error

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        raise self.error

    def get_dimension(self) -> int:
        return 0
