"""Observability package for the archive assistant."""

from .logging import setup_logging, JSONFormatter, ColoredFormatter
from .prometheus_metrics import (
    archive_registry,
    embedding_duration,
    fetch_retries,
    get_metrics_text,
    record_fetch_attempt,
    record_ingestion_outcome,
    record_retrieval
)

__all__ = [
    'setup_logging',
    'JSONFormatter',
    'ColoredFormatter',
    'archive_registry',
    'embedding_duration',
    'fetch_retries',
    'get_metrics_text',
    'record_fetch_attempt',
    'record_ingestion_outcome',
    'record_retrieval'
]
