"""Local embedding provider using sentence-transformers.

Runs embedding models in-process without API calls.

Trade-offs:
- Requires local compute resources (CPU/GPU)
- Model download required on first use
- The query embedding must come from the same model that embedded the store
"""

import asyncio
from typing import Optional

import structlog
from sentence_transformers import SentenceTransformer

from groundwork.providers.base import EmbeddingProvider, ProviderConfig, ProviderError

logger = structlog.get_logger(__name__)


class LocalEmbeddingProvider(EmbeddingProvider):
    """In-process embedding provider.

    Example:
        config = ProviderConfig(provider_type="local", model_name="all-MiniLM-L6-v2")
        provider = LocalEmbeddingProvider(config)
        vector = await provider.embed_text("companion planting")
    """

    def __init__(self, config: ProviderConfig) -> None:
        """Load the model.

        Raises:
            ProviderError: If model loading fails
        """
        super().__init__(config)
        self.model_name = config.model_name
        self._model: Optional[SentenceTransformer] = None

        try:
            logger.info("loading_local_embedding_model", model_name=self.model_name)
            self._model = SentenceTransformer(self.model_name, **config.extra_params)
            self._dimension = self._model.get_sentence_embedding_dimension()
        except Exception as e:
            raise ProviderError(
                message=f"Failed to load model '{self.model_name}': {e}",
                provider="local",
                original_error=e,
            )

        logger.info(
            "local_embedding_model_loaded",
            model_name=self.model_name,
            dimension=self._dimension,
        )

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        if not text or not text.strip():
            raise ProviderError(message="Cannot embed empty text", provider="local")

        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts in one model pass."""
        if not texts:
            return []
        if self._model is None:
            raise ProviderError(message="Model not initialized", provider="local")

        for i, text in enumerate(texts):
            if not text or not text.strip():
                raise ProviderError(
                    message=f"Cannot embed empty text at index {i}",
                    provider="local",
                )

        try:
            # Inference is CPU bound; keep it off the event loop
            embeddings = await asyncio.to_thread(
                self._model.encode,
                texts,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as e:
            raise ProviderError(
                message=f"Failed to generate embeddings: {e}",
                provider="local",
                original_error=e,
            )

        return embeddings.tolist()

    def get_dimension(self) -> int:
        """Return the embedding dimension for this model."""
        if self._model is None:
            raise ProviderError(message="Model not initialized", provider="local")
        return self._dimension

    async def close(self) -> None:
        """Drop the model reference so it can be garbage collected."""
        if self._model is not None:
            logger.info("closing_local_embedding_provider", model_name=self.model_name)
            self._model = None
