"""Indexer package: the archive store, embeddings and hybrid retrieval."""

from .embeddings import (
    EmbeddingError,
    EmbeddingMismatchError,
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
    validate_embeddings
)
from .fusion import RetrievedChunk, RankedCandidate, reciprocal_rank_fusion
from .postgres_adapter import ArchiveStore, DocumentWriter, StoreUnavailableError
from .retrieval import RetrievalEngine, RetrievalResult

__all__ = [
    'EmbeddingError',
    'EmbeddingMismatchError',
    'EmbeddingProvider',
    'OpenAIEmbeddingProvider',
    'validate_embeddings',
    'RetrievedChunk',
    'RankedCandidate',
    'reciprocal_rank_fusion',
    'ArchiveStore',
    'DocumentWriter',
    'StoreUnavailableError',
    'RetrievalEngine',
    'RetrievalResult'
]
