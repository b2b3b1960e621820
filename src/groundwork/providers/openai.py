"""OpenAI-compatible embedding provider.

Works against api.openai.com or any endpoint speaking the same embeddings
API (OpenRouter, vLLM, Ollama) by setting ``base_url`` in extra_params.

Trade-offs:
- API costs per token
- Requires a network connection
- Rate limits apply
"""

import os

import openai
import structlog
from openai import AsyncOpenAI

from groundwork.providers.base import EmbeddingProvider, ProviderConfig, ProviderError

logger = structlog.get_logger(__name__)


# Model metadata for common embedding models
MODEL_METADATA = {
    "text-embedding-ada-002": {"dimension": 1536},
    "text-embedding-3-small": {"dimension": 1536},
    "text-embedding-3-large": {"dimension": 3072},
    "qwen/qwen3-embedding-8b": {"dimension": 4096},
}

DEFAULT_MODEL = "text-embedding-3-small"

# Maximum inputs per embeddings request
MAX_BATCH_SIZE = 2048


def _resolve_api_key(value: str | None) -> str | None:
    """Accept either an environment variable name or a literal key."""
    if not value:
        return os.getenv("OPENAI_API_KEY")
    return os.getenv(value) or value


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Example:
        config = ProviderConfig(
            provider_type="openai",
            model_name="text-embedding-3-small",
            api_key="OPENAI_API_KEY",
        )
        provider = OpenAIEmbeddingProvider(config)
        vector = await provider.embed_text("How do I build a swale?")
    """

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize the provider.

        Raises:
            ProviderError: If no API key is available or the client cannot be built
        """
        super().__init__(config)

        api_key = _resolve_api_key(config.api_key)
        if not api_key:
            raise ProviderError(
                message="API key is required (set OPENAI_API_KEY or embedding.api_key)",
                provider="openai",
            )

        self.model_name = config.model_name or DEFAULT_MODEL
        self._dimension = MODEL_METADATA.get(self.model_name, {}).get("dimension")
        if self._dimension is None:
            logger.warning(
                "unknown_embedding_model",
                model_name=self.model_name,
                known_models=list(MODEL_METADATA),
            )

        client_kwargs = {"api_key": api_key, "timeout": config.timeout}
        client_kwargs.update(config.extra_params)

        try:
            self.client = AsyncOpenAI(**client_kwargs)
        except Exception as e:
            raise ProviderError(
                message=f"Failed to initialize OpenAI client: {e}",
                provider="openai",
                original_error=e,
            )

        logger.info(
            "openai_embedding_provider_initialized",
            model_name=self.model_name,
            dimension=self._dimension,
        )

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Raises:
            ProviderError: If text is empty or the API call fails
        """
        if not text or not text.strip():
            raise ProviderError(message="Cannot embed empty text", provider="openai")

        vectors = await self._create([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Large inputs are split into MAX_BATCH_SIZE requests.

        Raises:
            ProviderError: If any text is empty or an API call fails
        """
        if not texts:
            return []

        for i, text in enumerate(texts):
            if not text or not text.strip():
                raise ProviderError(
                    message=f"Cannot embed empty text at index {i}",
                    provider="openai",
                )

        all_embeddings: list[list[float]] = []
        for i in range(0, len(texts), MAX_BATCH_SIZE):
            all_embeddings.extend(await self._create(texts[i : i + MAX_BATCH_SIZE]))

        logger.info(
            "openai_batch_embeddings_generated",
            total_texts=len(texts),
            model=self.model_name,
        )
        return all_embeddings

    async def _create(self, inputs: list[str]) -> list[list[float]]:
        try:
            response = await self.client.embeddings.create(input=inputs, model=self.model_name)
        except openai.AuthenticationError as e:
            raise ProviderError(
                message=f"OpenAI authentication failed: {e}",
                provider="openai",
                original_error=e,
            )
        except openai.RateLimitError as e:
            raise ProviderError(
                message=f"OpenAI rate limit exceeded: {e}",
                provider="openai",
                original_error=e,
            )
        except (openai.APIConnectionError, openai.APITimeoutError) as e:
            raise ProviderError(
                message=f"Network error calling embeddings API: {e}",
                provider="openai",
                original_error=e,
            )
        except Exception as e:
            raise ProviderError(
                message=f"Failed to generate embedding: {e}",
                provider="openai",
                original_error=e,
            )

        if response.usage:
            logger.debug(
                "openai_embedding_generated",
                tokens_used=response.usage.total_tokens,
                model=self.model_name,
            )

        vectors = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        if self._dimension is None and vectors:
            self._dimension = len(vectors[0])
        return vectors

    def get_dimension(self) -> int:
        """Return the embedding dimension (inferred from the first response if unknown)."""
        if self._dimension is None:
            raise ProviderError(
                message=f"Dimension of '{self.model_name}' is unknown until the first request",
                provider="openai",
            )
        return self._dimension

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        logger.debug("closing_openai_embedding_provider", model_name=self.model_name)
        await self.client.close()
