# Archive Embeddings Module
# Turns chunk and query text into fixed-width vectors via the OpenAI API

import logging
import time
from typing import List, Protocol, Sequence

import openai

from config.settings import EmbeddingConfig
from observability.prometheus_metrics import embedding_duration

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """The embedding provider could not produce vectors."""


class EmbeddingMismatchError(EmbeddingError):
    """Vectors disagree with their inputs in count or width."""


class EmbeddingProvider(Protocol):
    """Given texts, return one vector per text in the same order."""

    dimensions: int

    async def embed(self, texts: Sequence[str]) -> List[List[float]]: ...


def validate_embeddings(texts: Sequence[str], vectors: Sequence[Sequence[float]], dimensions: int) -> None:
    """Reject a batch whose count or vector width is off."""
    if len(vectors) != len(texts):
        raise EmbeddingMismatchError(
            f"Embedding count mismatch: {len(vectors)} != {len(texts)}"
        )
    for idx, vector in enumerate(vectors):
        if vector is None or len(vector) != dimensions:
            width = None if vector is None else len(vector)
            raise EmbeddingMismatchError(
                f"Invalid embedding at index {idx}: length={width}, expected {dimensions}"
            )


class OpenAIEmbeddingProvider:
    """Batched embeddings from the OpenAI embeddings endpoint."""

    def __init__(self, api_key: str,
                 model: str = "text-embedding-3-small",
                 dimensions: int = 1536,
                 batch_size: int = 256,
                 client: "openai.AsyncOpenAI" = None):
        if not api_key and client is None:
            raise EmbeddingError("OPENAI_API_KEY is not set")
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.client = client or openai.AsyncOpenAI(api_key=api_key)

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> 'OpenAIEmbeddingProvider':
        return cls(
            api_key=config.api_key,
            model=config.model,
            dimensions=config.dimensions,
            batch_size=config.batch_size
        )

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed ``texts`` in order; raises :class:`EmbeddingError` on provider failure."""
        if not texts:
            return []

        vectors: List[List[float]] = []
        for offset in range(0, len(texts), self.batch_size):
            batch = list(texts[offset:offset + self.batch_size])
            start = time.perf_counter()
            try:
                # text-embedding-3-* models shorten to the requested width
                response = await self.client.embeddings.create(
                    model=self.model, input=batch, dimensions=self.dimensions
                )
            except openai.OpenAIError as e:
                logger.error(f"Embedding request failed for batch at {offset}: {e}")
                raise EmbeddingError(f"Embedding request failed: {e}") from e
            finally:
                embedding_duration.labels(model=self.model).observe(time.perf_counter() - start)

            # The API tags each vector with its input index
            ordered = sorted(response.data, key=lambda item: item.index)
            vectors.extend(item.embedding for item in ordered)

        logger.debug(f"Generated {len(vectors)} embeddings with {self.model}")
        return vectors

    async def close(self):
        await self.client.close()
