"""Shared fakes for the archive test suite."""

from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Sequence

import pytest

from indexer.embeddings import EmbeddingError, EmbeddingMismatchError
from indexer.fusion import RetrievedChunk
from pipelines.fetcher import FetchError


class WordEncoding:
    """Whitespace tokenizer standing in for tiktoken: one word, one token."""

    def encode(self, text: str) -> List[str]:
        return text.split()

    def decode(self, tokens: Sequence[str]) -> str:
        return " ".join(tokens)


class FakeEmbedder:
    """Deterministic embeddings; can be told to fail or misbehave."""

    def __init__(self, dimensions: int = 4):
        self.dimensions = dimensions
        self.calls: List[List[str]] = []
        self.fail = False
        self.drop_last = False
        self.width_override: Optional[int] = None

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("quota exceeded")
        width = self.width_override or self.dimensions
        vectors = [[float(len(text))] + [0.0] * (width - 1) for text in texts]
        if self.drop_last:
            vectors = vectors[:-1]
        return vectors


class FakeFetcher:
    """Serves canned pages; a list value is consumed one response per call."""

    def __init__(self, pages: Optional[Dict[str, object]] = None):
        self.pages = dict(pages or {})
        self.calls: List[str] = []

    async def fetch(self, url: str, **kwargs) -> str:
        self.calls.append(url)
        response = self.pages.get(url)
        if isinstance(response, list):
            response = response.pop(0) if response else FetchError(url, "no more responses")
        if response is None:
            raise FetchError(url, f"Failed to fetch {url}: 404 Not Found")
        if isinstance(response, Exception):
            raise response
        return response


class _FakeWriter:
    def __init__(self, store: "FakeStore"):
        self.store = store
        self.posts: Dict[str, dict] = {}
        self.chunks: List[dict] = []

    async def insert_document(self, url, title, year, content) -> int:
        if url in self.store.posts or url in self.posts:
            raise ValueError(f"duplicate key value violates unique constraint: {url}")
        self.store.next_id += 1
        self.posts[url] = {"id": self.store.next_id, "url": url, "title": title,
                           "year": year, "content": content}
        return self.store.next_id

    async def insert_chunks(self, document_id, title, url, chunks, embeddings) -> int:
        if len(chunks) != len(embeddings):
            raise EmbeddingMismatchError("count mismatch")
        for idx, (chunk, embedding) in enumerate(zip(chunks, embeddings)):
            if len(embedding) != self.store.dimensions:
                raise EmbeddingMismatchError("width mismatch")
            self.chunks.append({"post_id": document_id, "chunk_index": idx, "post_title": title,
                                "url": url, "content": chunk, "embedding": list(embedding)})
        return len(chunks)


class FakeStore:
    """In-memory posts/chunks with commit-or-discard transactions."""

    def __init__(self, dimensions: int = 4):
        self.dimensions = dimensions
        self.posts: Dict[str, dict] = {}
        self.chunks: List[dict] = []
        self.next_id = 0
        self.rollbacks = 0
        self.vector_rows: List[RetrievedChunk] = []
        self.lexical_rows: List[RetrievedChunk] = []
        self.trigram_rows: List[RetrievedChunk] = []
        self.search_calls: List[tuple] = []
        self.unavailable: Optional[Exception] = None

    async def document_exists(self, url: str) -> bool:
        if self.unavailable:
            raise self.unavailable
        return url in self.posts

    @asynccontextmanager
    async def transaction(self):
        writer = _FakeWriter(self)
        try:
            yield writer
        except BaseException:
            self.rollbacks += 1
            raise
        self.posts.update(writer.posts)
        self.chunks.extend(writer.chunks)

    def chunks_for(self, url: str) -> List[dict]:
        return [c for c in self.chunks if c["url"] == url]

    async def search_vector(self, embedding, limit):
        self.search_calls.append(("vector", limit))
        return self.vector_rows[:limit]

    async def search_fulltext(self, query, limit):
        self.search_calls.append(("lexical", limit))
        return self.lexical_rows[:limit]

    async def search_trigram(self, query, limit):
        self.search_calls.append(("trigram", limit))
        return self.trigram_rows[:limit]


def make_post_html(body_words: int = 120, title: str = "Post") -> str:
    words = " ".join(f"word{i}" for i in range(body_words))
    return (
        "<html><head><title>{t}</title><script>var x = 1;</script></head><body>"
        "<header>Site header</header><nav>Home Archive</nav>"
        "<article><h1>{t}</h1><p>{w}</p></article>"
        "<footer>Footer text</footer></body></html>"
    ).format(t=title, w=words)


@pytest.fixture
def word_encoding():
    return WordEncoding()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()
