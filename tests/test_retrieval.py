import asyncio
from unittest.mock import AsyncMock

import pytest

from config.settings import RetrievalConfig
from indexer.embeddings import EmbeddingError, EmbeddingMismatchError
from indexer.fusion import LEXICAL, TRIGRAM, VECTOR, RetrievedChunk
from indexer.postgres_adapter import StoreUnavailableError
from indexer.retrieval import RetrievalEngine, RetrievalResult


def _rows(prefix, n):
    return [
        RetrievedChunk(content=f"{prefix} chunk {i}", title=prefix, url=f"https://nav.al/{prefix}",
                       chunk_id=i, chunk_index=i)
        for i in range(n)
    ]


class TestRetrievalEngine:
    @pytest.mark.asyncio
    async def test_empty_corpus_reports_no_candidates(self, fake_store, fake_embedder):
        engine = RetrievalEngine(fake_store, fake_embedder)

        result = await engine.retrieve("what is leverage?")

        assert result.no_candidates
        assert len(result) == 0
        assert result.candidate_counts == {VECTOR: 0, LEXICAL: 0, TRIGRAM: 0}

    @pytest.mark.asyncio
    async def test_uses_configured_pool_sizes(self, fake_store, fake_embedder):
        engine = RetrievalEngine(fake_store, fake_embedder)

        await engine.retrieve("leverage")

        assert sorted(fake_store.search_calls) == [
            ("lexical", 80), ("trigram", 60), ("vector", 80)
        ]
        assert fake_embedder.calls == [["leverage"]]

    @pytest.mark.asyncio
    async def test_returns_top_k_fused_chunks(self, fake_store, fake_embedder):
        fake_store.vector_rows = _rows("wealth", 20)
        fake_store.lexical_rows = _rows("luck", 20)
        engine = RetrievalEngine(fake_store, fake_embedder, RetrievalConfig(top_k=8))

        result = await engine.retrieve("wealth and luck")

        assert len(result) == 8
        assert not result.no_candidates
        assert result.candidate_counts[VECTOR] == 20
        scores = [c.score for c in result.chunks]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_explicit_k_overrides_default(self, fake_store, fake_embedder):
        fake_store.vector_rows = _rows("wealth", 20)
        engine = RetrievalEngine(fake_store, fake_embedder)

        result = await engine.retrieve("wealth", k=3)

        assert len(result) == 3

    @pytest.mark.asyncio
    async def test_chunk_found_by_all_signals_ranks_first(self, fake_store, fake_embedder):
        shared = _rows("judgment", 1)[0]
        fake_store.vector_rows = _rows("noise", 5) + [shared]
        fake_store.lexical_rows = [shared] + _rows("other", 5)
        fake_store.trigram_rows = [shared]
        engine = RetrievalEngine(fake_store, fake_embedder)

        result = await engine.retrieve("judgment")

        assert result.chunks[0].chunk == shared
        assert set(result.chunks[0].contributions) == {VECTOR, LEXICAL, TRIGRAM}
        urls_and_indexes = [(c.chunk.url, c.chunk.chunk_index) for c in result.chunks]
        assert len(urls_and_indexes) == len(set(urls_and_indexes))

    @pytest.mark.asyncio
    async def test_weights_come_from_config(self, fake_store, fake_embedder):
        fake_store.vector_rows = _rows("a", 1)
        fake_store.trigram_rows = _rows("b", 1)
        config = RetrievalConfig(vector_weight=0.1, trigram_weight=2.0)
        engine = RetrievalEngine(fake_store, fake_embedder, config)

        result = await engine.retrieve("query")

        assert [c.chunk.title for c in result.chunks] == ["b", "a"]

    def test_default_weights_favour_vector_and_lexical(self, fake_store, fake_embedder):
        engine = RetrievalEngine(fake_store, fake_embedder)
        assert engine.weights == {VECTOR: 1.0, LEXICAL: 1.0, TRIGRAM: 0.8}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_blank_query_rejected(self, fake_store, fake_embedder, query):
        engine = RetrievalEngine(fake_store, fake_embedder)
        with pytest.raises(ValueError):
            await engine.retrieve(query)
        assert fake_store.search_calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("k", [0, -1])
    async def test_k_below_one_rejected(self, fake_store, fake_embedder, k):
        fake_store.vector_rows = _rows("wealth", 10)
        engine = RetrievalEngine(fake_store, fake_embedder)

        with pytest.raises(ValueError):
            await engine.retrieve("wealth", k=k)
        assert fake_store.search_calls == []

    @pytest.mark.asyncio
    async def test_failed_search_surfaces_after_others_finish(self, fake_store, fake_embedder):
        finished = []

        async def slow_trigram(query, limit):
            await asyncio.sleep(0.01)
            finished.append("trigram")
            return []

        fake_store.search_fulltext = AsyncMock(side_effect=StoreUnavailableError(
            "Database connection failed", is_local=False, hint="check DATABASE_URL"
        ))
        fake_store.search_trigram = slow_trigram
        engine = RetrievalEngine(fake_store, fake_embedder)

        with pytest.raises(StoreUnavailableError):
            await engine.retrieve("wealth")
        assert finished == ["trigram"]

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, fake_store, fake_embedder):
        fake_embedder.fail = True
        engine = RetrievalEngine(fake_store, fake_embedder)
        with pytest.raises(EmbeddingError):
            await engine.retrieve("leverage")

    @pytest.mark.asyncio
    async def test_query_vector_width_checked(self, fake_store, fake_embedder):
        fake_embedder.width_override = 3
        engine = RetrievalEngine(fake_store, fake_embedder)
        with pytest.raises(EmbeddingMismatchError):
            await engine.retrieve("leverage")


def test_result_with_some_candidates_is_not_empty():
    result = RetrievalResult(query="q", candidate_counts={VECTOR: 0, LEXICAL: 2, TRIGRAM: 0})
    assert not result.no_candidates
