"""Unit tests for embedding generation."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import respx
from httpx import Response

from vector_retrieval.embedding import (
    GEMINI_BASE_URL,
    EmbeddingConfig,
    GeminiEmbedding,
    OpenAIEmbedding,
    StubEmbedding,
    create_embedding_client,
    fallback_vector,
)
from vector_retrieval.errors import ConfigurationError

OPENAI_URL = "https://api.openai.com/v1/embeddings"
GEMINI_URL = f"{GEMINI_BASE_URL}/models/embedding-001:embedContent"


@pytest.fixture
def embedding_config() -> EmbeddingConfig:
    """Standard embedding configuration for tests."""
    return EmbeddingConfig(
        model="openai/text-embedding-3-small",
        dimensions=1536,
        max_retries=0,
        timeout_seconds=10.0,
        api_key="sk-test-key",
    )


@pytest.fixture
def gemini_config() -> EmbeddingConfig:
    return EmbeddingConfig(
        model="gemini/embedding-001",
        dimensions=768,
        max_retries=0,
        api_key="AIza-test",
    )


def _openai_response(vector: list[float]) -> Response:
    return Response(
        200,
        json={
            "object": "list",
            "data": [{"object": "embedding", "embedding": vector, "index": 0}],
            "model": "text-embedding-3-small",
            "usage": {"prompt_tokens": 5, "total_tokens": 5},
        },
    )


class TestEmbeddingConfig:
    """Tests for EmbeddingConfig validation."""

    def test_defaults(self):
        config = EmbeddingConfig()
        assert config.model == "openai/text-embedding-3-small"
        assert config.dimensions == 1536
        assert config.max_text_length == 25000
        assert config.api_key is None

    def test_invalid_dimensions(self):
        """Dimensions must be in valid range."""
        with pytest.raises(ValueError):
            EmbeddingConfig(dimensions=50)

        with pytest.raises(ValueError):
            EmbeddingConfig(dimensions=5000)

    def test_dimensions_coerced_from_string(self):
        """Env interpolation yields strings; pydantic coerces them."""
        assert EmbeddingConfig(dimensions="768").dimensions == 768


class TestFallbackVector:
    """Tests for the deterministic fallback vector."""

    def test_length_and_range(self):
        vector = fallback_vector("anything", 768)
        assert len(vector) == 768
        assert all(-0.5 <= v < 0.5 for v in vector)

    def test_same_text_same_vector(self):
        assert fallback_vector("hello world", 128) == fallback_vector("hello world", 128)

    def test_different_text_different_vector(self):
        assert fallback_vector("hello", 128) != fallback_vector("goodbye", 128)


class TestOpenAIEmbedding:
    """Tests for OpenAI embedding client."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_embed_success(self, embedding_config):
        """Single text should embed successfully."""
        route = respx.post(OPENAI_URL).mock(return_value=_openai_response([0.1] * 1536))

        client = OpenAIEmbedding(embedding_config)
        vector = await client.embed("Test text")

        assert route.called
        assert len(vector) == 1536
        assert all(isinstance(v, float) for v in vector)
        assert client.fallback_count == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_request_sends_model_and_dimensions(self, embedding_config):
        """text-embedding-3 models receive the configured dimensionality."""
        route = respx.post(OPENAI_URL).mock(return_value=_openai_response([0.1] * 1536))

        await OpenAIEmbedding(embedding_config).embed("Test text")

        body = json.loads(route.calls.last.request.content)
        assert body["model"] == "text-embedding-3-small"
        assert body["dimensions"] == 1536
        assert body["input"] == "Test text"

    @pytest.mark.asyncio
    @respx.mock
    async def test_long_text_truncated(self, embedding_config):
        """Texts longer than max_text_length are cut before submission."""
        route = respx.post(OPENAI_URL).mock(return_value=_openai_response([0.1] * 1536))
        config = embedding_config.model_copy(update={"max_text_length": 10})

        await OpenAIEmbedding(config).embed("x" * 50)

        body = json.loads(route.calls.last.request.content)
        assert body["input"] == "x" * 10

    @pytest.mark.asyncio
    @respx.mock
    async def test_provider_error_uses_fallback(self, embedding_config):
        """A failing provider yields the fallback vector instead of raising."""
        respx.post(OPENAI_URL).mock(
            return_value=Response(500, json={"error": {"message": "boom"}})
        )

        client = OpenAIEmbedding(embedding_config)
        vector = await client.embed("Test text")

        assert vector == fallback_vector("Test text", 1536)
        assert client.fallback_count == 1

    @pytest.mark.asyncio
    async def test_empty_response_data_uses_fallback(self, embedding_config, monkeypatch):
        """A response without embeddings yields the fallback vector."""
        client = OpenAIEmbedding(embedding_config)
        assert client.client is not None
        create = AsyncMock(return_value=SimpleNamespace(data=[]))
        monkeypatch.setattr(client.client.embeddings, "create", create)

        vector = await client.embed("Test text")

        assert vector == fallback_vector("Test text", 1536)
        assert client.fallback_count == 1
        create.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_api_key_uses_fallback(self):
        """Without a key no request is made and a fallback is returned."""
        client = OpenAIEmbedding(EmbeddingConfig(dimensions=256))

        vector = await client.embed("offline")

        assert client.client is None
        assert len(vector) == 256
        assert client.fallback_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_wrong_dimensions_raise(self, embedding_config):
        """A vector of unexpected length is a configuration error."""
        respx.post(OPENAI_URL).mock(return_value=_openai_response([0.1] * 512))

        client = OpenAIEmbedding(embedding_config)
        with pytest.raises(ConfigurationError, match="Expected 1536 dimensions"):
            await client.embed("Test text")

    @pytest.mark.asyncio
    @respx.mock
    async def test_embed_batch_preserves_order(self, embedding_config):
        """Batch embedding returns one vector per text, in input order."""

        def respond(request):
            text = json.loads(request.content)["input"]
            value = 0.1 if text == "first" else 0.2
            return _openai_response([value] * 1536)

        respx.post(OPENAI_URL).mock(side_effect=respond)

        vectors = await OpenAIEmbedding(embedding_config).embed_batch(["first", "second"])

        assert [v[0] for v in vectors] == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_embed_batch_empty(self, embedding_config):
        assert await OpenAIEmbedding(embedding_config).embed_batch([]) == []


class TestGeminiEmbedding:
    """Tests for the Gemini REST client."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_embed_success(self, gemini_config):
        route = respx.post(GEMINI_URL).mock(
            return_value=Response(200, json={"embedding": {"values": [0.25] * 768}})
        )

        client = GeminiEmbedding(gemini_config)
        vector = await client.embed("Gemini text")
        await client.close()

        assert vector == [0.25] * 768
        request = route.calls.last.request
        assert request.url.params["key"] == "AIza-test"
        body = json.loads(request.content)
        assert body["model"] == "models/embedding-001"
        assert body["content"] == {"parts": [{"text": "Gemini text"}]}

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_uses_fallback(self, gemini_config):
        respx.post(GEMINI_URL).mock(return_value=Response(429, json={"error": "quota"}))

        client = GeminiEmbedding(gemini_config)
        vector = await client.embed("Gemini text")
        await client.close()

        assert vector == fallback_vector("Gemini text", 768)
        assert client.fallback_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_response_uses_fallback(self, gemini_config):
        respx.post(GEMINI_URL).mock(return_value=Response(200, json={"unexpected": True}))

        client = GeminiEmbedding(gemini_config)
        vector = await client.embed("Gemini text")
        await client.close()

        assert len(vector) == 768
        assert client.fallback_count == 1

    @pytest.mark.asyncio
    async def test_missing_key_uses_fallback(self, gemini_config):
        client = GeminiEmbedding(gemini_config.model_copy(update={"api_key": None}))
        vector = await client.embed("Gemini text")
        await client.close()

        assert len(vector) == 768
        assert client.fallback_count == 1


class TestStubEmbedding:
    """Tests for the offline stub client."""

    @pytest.mark.asyncio
    async def test_stub_is_deterministic(self):
        client = StubEmbedding(EmbeddingConfig(model="stub/local", dimensions=128))

        first = await client.embed("hello world")
        second = await client.embed("hello world")

        assert first == second
        assert len(first) == 128
        assert client.fallback_count == 2


class TestFactory:
    """Tests for create_embedding_client factory."""

    def test_create_openai_client(self, embedding_config):
        client = create_embedding_client(embedding_config)
        assert isinstance(client, OpenAIEmbedding)
        assert client.model_name == "text-embedding-3-small"

    def test_create_gemini_client(self, gemini_config):
        client = create_embedding_client(gemini_config)
        assert isinstance(client, GeminiEmbedding)
        assert client.model_name == "embedding-001"

    def test_create_stub_client(self):
        client = create_embedding_client(EmbeddingConfig(model="stub/local"))
        assert isinstance(client, StubEmbedding)

    def test_unknown_prefix(self):
        """Unknown model prefix is a configuration error."""
        with pytest.raises(ConfigurationError, match="Unknown model prefix"):
            create_embedding_client(EmbeddingConfig(model="unknown/model"))
