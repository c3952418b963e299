"""Unit tests for the OpenAI embedding provider."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from config.settings import EmbeddingConfig
from indexer.embeddings import (
    EmbeddingError,
    EmbeddingMismatchError,
    OpenAIEmbeddingProvider,
    validate_embeddings
)


def _response(vectors, reverse=False):
    data = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
    if reverse:
        data.reverse()
    return SimpleNamespace(data=data)


@pytest.fixture
def client():
    client = MagicMock()
    client.embeddings.create = AsyncMock()
    client.close = AsyncMock()
    return client


class TestValidateEmbeddings:
    def test_accepts_matching_batch(self):
        validate_embeddings(["a", "b"], [[0.0, 1.0], [1.0, 0.0]], dimensions=2)

    def test_rejects_count_mismatch(self):
        with pytest.raises(EmbeddingMismatchError, match="count"):
            validate_embeddings(["a", "b"], [[0.0, 1.0]], dimensions=2)

    def test_rejects_wrong_width(self):
        with pytest.raises(EmbeddingMismatchError, match="index 0"):
            validate_embeddings(["a"], [[0.0]], dimensions=2)

    def test_rejects_missing_vector(self):
        with pytest.raises(EmbeddingMismatchError):
            validate_embeddings(["a"], [None], dimensions=2)


class TestOpenAIEmbeddingProvider:
    def test_requires_api_key(self):
        with pytest.raises(EmbeddingError):
            OpenAIEmbeddingProvider(api_key="")

    def test_from_config(self):
        config = EmbeddingConfig(api_key="sk-test", model="text-embedding-3-small", dimensions=8)
        provider = OpenAIEmbeddingProvider.from_config(config)
        assert provider.dimensions == 8
        assert provider.model == "text-embedding-3-small"

    @pytest.mark.asyncio
    async def test_empty_input_skips_request(self, client):
        provider = OpenAIEmbeddingProvider(api_key="", client=client)
        assert await provider.embed([]) == []
        client.embeddings.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_restores_input_order(self, client):
        client.embeddings.create.return_value = _response([[1.0, 0.0], [0.0, 1.0]], reverse=True)
        provider = OpenAIEmbeddingProvider(api_key="", dimensions=2, client=client)

        vectors = await provider.embed(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]

    @pytest.mark.asyncio
    async def test_batches_large_inputs(self, client):
        client.embeddings.create.side_effect = [
            _response([[0.1]] * 2),
            _response([[0.2]] * 2),
            _response([[0.3]]),
        ]
        provider = OpenAIEmbeddingProvider(api_key="", dimensions=1, batch_size=2, client=client)

        vectors = await provider.embed(["a", "b", "c", "d", "e"])

        assert vectors == [[0.1], [0.1], [0.2], [0.2], [0.3]]
        inputs = [call.kwargs["input"] for call in client.embeddings.create.await_args_list]
        assert inputs == [["a", "b"], ["c", "d"], ["e"]]

    @pytest.mark.asyncio
    async def test_requests_configured_width(self, client):
        client.embeddings.create.return_value = _response([[0.0] * 512])
        provider = OpenAIEmbeddingProvider(api_key="", dimensions=512, client=client)

        vectors = await provider.embed(["x"])

        assert len(vectors[0]) == 512
        kwargs = client.embeddings.create.await_args.kwargs
        assert kwargs["dimensions"] == 512
        assert kwargs["model"] == "text-embedding-3-small"

    @pytest.mark.asyncio
    async def test_provider_errors_are_wrapped(self, client):
        client.embeddings.create.side_effect = openai.OpenAIError("rate limited")
        provider = OpenAIEmbeddingProvider(api_key="", client=client)

        with pytest.raises(EmbeddingError):
            await provider.embed(["a"])

    @pytest.mark.asyncio
    async def test_close_closes_client(self, client):
        provider = OpenAIEmbeddingProvider(api_key="", client=client)
        await provider.close()
        client.close.assert_awaited_once()
