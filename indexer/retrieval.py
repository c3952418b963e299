"""Hybrid retrieval over the archive corpus.

Three independent candidate searches (dense vector, full-text, trigram)
run concurrently and are fused with weighted Reciprocal Rank Fusion.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from config.settings import RetrievalConfig
from observability.prometheus_metrics import record_retrieval
from .embeddings import EmbeddingMismatchError, EmbeddingProvider
from .fusion import LEXICAL, RRF_K, TRIGRAM, VECTOR, RankedCandidate, reciprocal_rank_fusion
from .postgres_adapter import ArchiveStore

logger = logging.getLogger(__name__)


@dataclass
class RetrievalResult:
    """Top-k fused chunks plus how many rows each signal produced."""
    query: str
    chunks: List[RankedCandidate] = field(default_factory=list)
    candidate_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def no_candidates(self) -> bool:
        """True when every signal came back empty, as opposed to an error."""
        return not any(self.candidate_counts.values())

    def __len__(self) -> int:
        return len(self.chunks)


class RetrievalEngine:
    """Weighted-RRF fusion of vector, lexical and trigram candidates."""

    def __init__(self, store: ArchiveStore, embedder: EmbeddingProvider,
                 config: Optional[RetrievalConfig] = None):
        self.store = store
        self.embedder = embedder
        self.config = config or RetrievalConfig()

    @property
    def weights(self) -> Dict[str, float]:
        return {
            VECTOR: self.config.vector_weight,
            LEXICAL: self.config.lexical_weight,
            TRIGRAM: self.config.trigram_weight,
        }

    async def embed_query(self, query: str) -> List[float]:
        vectors = await self.embedder.embed([query])
        if len(vectors) != 1 or len(vectors[0]) != self.embedder.dimensions:
            raise EmbeddingMismatchError(
                f"Query embedding has unexpected shape: {len(vectors)} vectors"
            )
        return vectors[0]

    async def retrieve(self, query: str, k: Optional[int] = None) -> RetrievalResult:
        """Return up to ``k`` distinct chunks for ``query``, best first.

        Raises:
            ValueError: blank query or k below 1
            EmbeddingError: the query could not be embedded
            StoreUnavailableError: the database could not be reached
        """
        if not query or not query.strip():
            raise ValueError("Query must not be empty")
        top_k = k if k is not None else self.config.top_k
        if top_k < 1:
            raise ValueError(f"k must be at least 1, got {top_k}")

        start = time.perf_counter()
        embedding = await self.embed_query(query)

        # Let every search settle before surfacing a failure so none is left running
        outcomes = await asyncio.gather(
            self.store.search_vector(embedding, self.config.vector_k),
            self.store.search_fulltext(query, self.config.lexical_k),
            self.store.search_trigram(query, self.config.trigram_k),
            return_exceptions=True
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        vector_rows, lexical_rows, trigram_rows = outcomes

        counts = {
            VECTOR: len(vector_rows),
            LEXICAL: len(lexical_rows),
            TRIGRAM: len(trigram_rows),
        }
        weights = self.weights
        fused = reciprocal_rank_fusion(
            [
                (VECTOR, vector_rows, weights[VECTOR]),
                (LEXICAL, lexical_rows, weights[LEXICAL]),
                (TRIGRAM, trigram_rows, weights[TRIGRAM]),
            ],
            k=RRF_K,
            prefix_chars=self.config.dedup_prefix_chars,
        )

        result = RetrievalResult(query=query, chunks=fused[:top_k], candidate_counts=counts)
        duration = time.perf_counter() - start
        record_retrieval(duration, counts)

        if result.no_candidates:
            logger.info(f"No candidates for query {query!r}")
        else:
            logger.debug(
                f"Retrieved {len(result)} of {len(fused)} fused candidates "
                f"(vector={counts[VECTOR]}, lexical={counts[LEXICAL]}, trigram={counts[TRIGRAM]}) "
                f"in {duration * 1000:.1f}ms"
            )
        return result
