"""Prometheus metrics for ingestion and retrieval."""

import logging

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.core import CollectorRegistry

logger = logging.getLogger(__name__)

# Dedicated registry so scripts and tests never collide with the default one
archive_registry = CollectorRegistry()

# Fetch metrics
fetch_attempts = Counter(
    'archive_fetch_attempts_total',
    'Page fetch attempts by result',
    ['result'],
    registry=archive_registry
)

fetch_retries = Counter(
    'archive_fetch_retries_total',
    'Page fetches that were retried after a transient failure',
    registry=archive_registry
)

# Ingestion metrics
ingestion_outcomes = Counter(
    'archive_ingestion_outcomes_total',
    'Per-document ingestion outcomes',
    ['status'],
    registry=archive_registry
)

chunks_written = Counter(
    'archive_chunks_written_total',
    'Chunks committed to the store',
    registry=archive_registry
)

embedding_duration = Histogram(
    'archive_embedding_duration_seconds',
    'Embedding request duration in seconds',
    ['model'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=archive_registry
)

# Retrieval metrics
retrieval_duration = Histogram(
    'archive_retrieval_duration_seconds',
    'End-to-end hybrid retrieval duration in seconds',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=archive_registry
)

retrieval_candidates = Histogram(
    'archive_retrieval_candidates',
    'Candidate rows returned per signal before fusion',
    ['signal'],
    buckets=[0, 1, 5, 10, 25, 50, 80, 100],
    registry=archive_registry
)

retrieval_empty = Counter(
    'archive_retrieval_empty_total',
    'Queries for which no signal produced a candidate',
    registry=archive_registry
)


def record_fetch_attempt(success: bool) -> None:
    fetch_attempts.labels(result='success' if success else 'error').inc()


def record_ingestion_outcome(status: str, chunk_count: int = 0) -> None:
    """Record the terminal status of one manifest entry."""
    ingestion_outcomes.labels(status=status).inc()
    if chunk_count:
        chunks_written.inc(chunk_count)


def record_retrieval(duration: float, candidate_counts: dict) -> None:
    """Record latency and per-signal candidate counts for one query."""
    retrieval_duration.observe(duration)
    for signal, count in candidate_counts.items():
        retrieval_candidates.labels(signal=signal).observe(count)
    if not any(candidate_counts.values()):
        retrieval_empty.inc()


def get_metrics_text() -> str:
    """Render the registry in the Prometheus exposition format."""
    return generate_latest(archive_registry).decode('utf-8')
