"""Pipelines package for the archive assistant.

Provides fetching, manifest discovery, extraction, chunking and ingestion.
"""

from .fetcher import PageFetcher, FetchError, HTTPStatusError, FetchTimeoutError, RedirectError
from .retry import RetryExhaustedError, fetch_with_retries
from .manifest import ManifestBuilder, ManifestEntry, normalize_url, is_likely_document_url
from .extractor import ContentExtractor
from .chunker import TokenChunker
from .ingest import (
    IngestionOrchestrator,
    IngestionOutcome,
    IngestionStage,
    IngestionStatus,
    summarize
)

__all__ = [
    # Fetching
    'PageFetcher',
    'FetchError',
    'HTTPStatusError',
    'FetchTimeoutError',
    'RedirectError',
    'RetryExhaustedError',
    'fetch_with_retries',

    # Manifest
    'ManifestBuilder',
    'ManifestEntry',
    'normalize_url',
    'is_likely_document_url',

    # Extraction and chunking
    'ContentExtractor',
    'TokenChunker',

    # Ingestion
    'IngestionOrchestrator',
    'IngestionOutcome',
    'IngestionStage',
    'IngestionStatus',
    'summarize'
]
