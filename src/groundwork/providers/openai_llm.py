"""OpenAI-compatible chat completion provider.

Talks to ``/chat/completions`` over httpx so it also works with OpenRouter,
Ollama and other compatible endpoints.
"""

import os
from typing import Any, Optional

import httpx

from groundwork.core.tokens import estimate_tokens
from groundwork.providers.base import LLMProvider, ProviderConfig, ProviderError


class OpenAILLMProvider(LLMProvider):
    """LLM provider using the OpenAI chat completions API (or compatible endpoints)."""

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize the provider.

        Args:
            config: Provider configuration with api_key, model_name, etc.
        """
        super().__init__(config)
        self.api_key = os.getenv(config.api_key or "OPENAI_API_KEY") or config.api_key
        self.model_name = config.model_name
        self.extra_params = config.extra_params

        self.base_url = self.extra_params.get("base_url", "https://api.openai.com/v1")

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=config.timeout,
        )

    async def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> str:
        """Complete a role-tagged message list.

        Raises:
            ProviderError: If the request fails or the response is malformed
        """
        payload: dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        try:
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
            return data["choices"][0]["message"]["content"] or ""
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                message=f"Chat completion API error: {e.response.status_code} - {e.response.text}",
                provider="openai",
                original_error=e,
            )
        except (KeyError, IndexError, ValueError) as e:
            raise ProviderError(
                message=f"Malformed chat completion response: {e}",
                provider="openai",
                original_error=e,
            )
        except httpx.HTTPError as e:
            raise ProviderError(
                message=f"LLM generation failed: {e}",
                provider="openai",
                original_error=e,
            )

    def count_tokens(self, text: str) -> int:
        """Estimate token count (~4 characters per token)."""
        return estimate_tokens(text)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
