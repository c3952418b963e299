"""Configuration module for the archive assistant.

Provides configuration for the database, the ingestion pipeline and retrieval.
"""

from .database import PostgresConfig
from .settings import (
    ArchiveConfig,
    FetchConfig,
    IngestConfig,
    ChunkConfig,
    EmbeddingConfig,
    CompletionConfig,
    RetrievalConfig,
    load_env_files
)

__all__ = [
    'PostgresConfig',
    'ArchiveConfig',
    'FetchConfig',
    'IngestConfig',
    'ChunkConfig',
    'EmbeddingConfig',
    'CompletionConfig',
    'RetrievalConfig',
    'load_env_files'
]
