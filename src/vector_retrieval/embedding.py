"""Embedding client abstraction for model-agnostic vector generation.

Supports the OpenAI embeddings API and Google's Gemini `embedContent` REST API,
plus an offline stub. Every client honours the same contract: `embed()` always
returns a vector of the configured dimensionality. Provider failures are logged
and replaced by a deterministic fallback vector so ingestion and querying keep
working in degraded mode.
"""

from __future__ import annotations

import asyncio
import hashlib
import random
from typing import Protocol

import httpx
from loguru import logger
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, Field

from vector_retrieval.errors import ConfigurationError, EmbeddingProviderError

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class EmbeddingConfig(BaseModel):
    """Configuration for embedding generation.

    Attributes:
        model: Provider-prefixed model identifier (e.g., "openai/text-embedding-3-small")
        dimensions: Expected embedding dimensionality
        max_text_length: Texts are truncated to this many characters before submission
        max_retries: Retry budget handed to the provider SDK for transient failures
        timeout_seconds: API request timeout
        api_key: API key for the provider (set via env var)
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = Field(default=1536, ge=128, le=4096)
    max_text_length: int = Field(default=25000, ge=1)
    max_retries: int = Field(default=2, ge=0, le=10)
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    api_key: str | None = None


class EmbeddingClient(Protocol):
    """Protocol for embedding client implementations."""

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding for a single text. Never raises on provider failure."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for several texts, in input order."""
        ...

    async def close(self) -> None: ...


def fallback_vector(text: str, dimensions: int) -> list[float]:
    """Return a pseudo-random filler vector seeded from the text.

    The same text always yields the same vector, with components in [-0.5, 0.5).
    """
    seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
    rng = random.Random(seed)
    return [rng.random() - 0.5 for _ in range(dimensions)]


class BaseEmbedding:
    """Shared truncation, validation and fallback handling.

    Subclasses implement `_request`, raising `EmbeddingProviderError` for any
    provider-side failure.
    """

    provider = "base"

    def __init__(self, config: EmbeddingConfig):
        self.config = config
        self.model_name = config.model.split("/", 1)[-1]
        self.fallback_count = 0

    async def embed(self, text: str) -> list[float]:
        trimmed = text[: self.config.max_text_length]
        try:
            vector = await self._request(trimmed)
        except EmbeddingProviderError as exc:
            return self._fallback(trimmed, str(exc))

        if len(vector) != self.config.dimensions:
            raise ConfigurationError(
                f"Expected {self.config.dimensions} dimensions from {self.provider} "
                f"model {self.model_name!r}, got {len(vector)}"
            )
        return [float(v) for v in vector]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return list(await asyncio.gather(*(self.embed(text) for text in texts)))

    async def close(self) -> None:
        return None

    async def _request(self, text: str) -> list[float]:
        raise NotImplementedError

    def _fallback(self, text: str, reason: str) -> list[float]:
        self.fallback_count += 1
        logger.warning(
            f"Using fallback embedding from {self.provider} provider "
            f"(fallback #{self.fallback_count}): {reason}"
        )
        return fallback_vector(text, self.config.dimensions)


class OpenAIEmbedding(BaseEmbedding):
    """OpenAI embedding client."""

    provider = "openai"

    def __init__(self, config: EmbeddingConfig):
        super().__init__(config)
        # AsyncOpenAI refuses to construct without a key
        self.client: AsyncOpenAI | None = None
        if config.api_key:
            self.client = AsyncOpenAI(
                api_key=config.api_key,
                timeout=config.timeout_seconds,
                max_retries=config.max_retries,
            )

    async def _request(self, text: str) -> list[float]:
        if self.client is None:
            raise EmbeddingProviderError("OPENAI_API_KEY is not configured")

        kwargs: dict[str, object] = {"model": self.model_name, "input": text}
        if self.model_name.startswith("text-embedding-3"):
            kwargs["dimensions"] = self.config.dimensions

        try:
            response = await self.client.embeddings.create(**kwargs)  # type: ignore[arg-type]
        except OpenAIError as exc:
            raise EmbeddingProviderError(f"OpenAI embedding request failed: {exc}") from exc

        try:
            values = list(response.data[0].embedding)
        except (IndexError, AttributeError, TypeError) as exc:
            raise EmbeddingProviderError(f"Malformed OpenAI embedding response: {exc}") from exc

        logger.debug(f"Embedded {len(text)} characters with {self.model_name}")
        return values

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()


class GeminiEmbedding(BaseEmbedding):
    """Gemini embedding client speaking the Generative Language REST API."""

    provider = "gemini"

    def __init__(self, config: EmbeddingConfig, base_url: str = GEMINI_BASE_URL):
        super().__init__(config)
        self.http = httpx.AsyncClient(
            base_url=base_url,
            timeout=config.timeout_seconds,
            transport=httpx.AsyncHTTPTransport(retries=config.max_retries),
        )

    async def _request(self, text: str) -> list[float]:
        if not self.config.api_key:
            raise EmbeddingProviderError("GEMINI_API_KEY is not configured")

        try:
            response = await self.http.post(
                f"/models/{self.model_name}:embedContent",
                params={"key": self.config.api_key},
                json={
                    "model": f"models/{self.model_name}",
                    "content": {"parts": [{"text": text}]},
                },
            )
            response.raise_for_status()
            values = response.json()["embedding"]["values"]
        except httpx.HTTPError as exc:
            raise EmbeddingProviderError(f"Gemini embedding request failed: {exc}") from exc
        except (KeyError, TypeError, ValueError) as exc:
            raise EmbeddingProviderError(f"Malformed Gemini embedding response: {exc}") from exc

        logger.debug(f"Embedded {len(text)} characters with {self.model_name}")
        return list(values)

    async def close(self) -> None:
        await self.http.aclose()


class StubEmbedding(BaseEmbedding):
    """Offline client: every text maps to its deterministic fallback vector."""

    provider = "stub"

    async def embed(self, text: str) -> list[float]:
        trimmed = text[: self.config.max_text_length]
        self.fallback_count += 1
        return fallback_vector(trimmed, self.config.dimensions)


def create_embedding_client(config: EmbeddingConfig) -> BaseEmbedding:
    """Factory function to create embedding client based on model config.

    Args:
        config: Embedding configuration

    Returns:
        Embedding client implementation

    Example:
        >>> config = EmbeddingConfig(
        ...     model="gemini/embedding-001",
        ...     dimensions=768,
        ...     api_key="AIza..."
        ... )
        >>> client = create_embedding_client(config)
    """
    if config.model.startswith("openai/"):
        return OpenAIEmbedding(config)
    elif config.model.startswith("gemini/"):
        return GeminiEmbedding(config)
    elif config.model.startswith("stub/"):
        return StubEmbedding(config)
    else:
        raise ConfigurationError(
            f"Unknown model prefix in {config.model!r}. "
            f"Expected 'openai/', 'gemini/' or 'stub/'"
        )
