"""Archive ingestion pipeline.

Drives each manifest entry through fetch, extraction, chunking, embedding
and a single-transaction write. Entries are processed one at a time with a
fixed delay between fetches; one entry's failure never stops the run.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from config.settings import IngestConfig
from indexer.embeddings import EmbeddingProvider, validate_embeddings
from indexer.postgres_adapter import ArchiveStore, StoreUnavailableError
from observability.prometheus_metrics import record_ingestion_outcome
from .chunker import TokenChunker
from .extractor import ContentExtractor
from .fetcher import PageFetcher
from .manifest import ManifestBuilder, ManifestEntry, save_manifest
from .retry import RetryExhaustedError, fetch_with_retries

logger = logging.getLogger(__name__)


class IngestionStage(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    PERSISTING = "persisting"
    DONE = "done"


class IngestionStatus(str, Enum):
    DONE = "done"
    SKIPPED_EXISTING = "skipped_existing"
    SKIPPED_SHORT = "skipped_short"
    FAILED = "failed"


class DocumentRejected(Exception):
    """A document cannot be stored as-is; its transaction is rolled back."""


@dataclass
class IngestionOutcome:
    """What happened to one manifest entry."""
    url: str
    title: str
    status: IngestionStatus = IngestionStatus.FAILED
    stage: IngestionStage = IngestionStage.PENDING
    reason: Optional[str] = None
    chunk_count: int = 0
    attempts: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status != IngestionStatus.FAILED


def apply_limit(manifest: Sequence[ManifestEntry], limit: Optional[int]) -> List[ManifestEntry]:
    """First ``limit`` entries; ``None`` or a non-positive limit keeps them all."""
    if limit is not None and limit > 0:
        return list(manifest[:limit])
    return list(manifest)


def summarize(outcomes: Sequence[IngestionOutcome]) -> Dict[str, int]:
    """Count outcomes per status, every status present."""
    counts = Counter(outcome.status.value for outcome in outcomes)
    return {status.value: counts.get(status.value, 0) for status in IngestionStatus}


class IngestionOrchestrator:
    """Sequential, idempotent ingestion of archive posts into the store."""

    def __init__(self,
                 store: ArchiveStore,
                 fetcher: PageFetcher,
                 embedder: EmbeddingProvider,
                 chunker: TokenChunker,
                 extractor: Optional[ContentExtractor] = None,
                 config: Optional[IngestConfig] = None):
        self.store = store
        self.fetcher = fetcher
        self.embedder = embedder
        self.chunker = chunker
        self.config = config or IngestConfig()
        self.extractor = extractor or ContentExtractor(min_length=self.config.min_content_length)

    async def fetch_page(self, url: str) -> str:
        """Fetch through the bounded retry loop."""
        return await fetch_with_retries(
            self.fetcher.fetch,
            url,
            max_attempts=self.config.max_retries,
            backoff_base=self.config.backoff_base_ms / 1000,
            max_backoff=self.config.max_backoff_ms / 1000
        )

    async def build_manifest(self) -> List[ManifestEntry]:
        builder = ManifestBuilder(self.config.index_url, self.fetch_page)
        manifest = await builder.build_manifest()
        if self.config.manifest_path:
            path = save_manifest(manifest, self.config.manifest_path)
            logger.info(f"Manifest cached at {path}")
        return manifest

    async def ingest_archive(self, limit: Optional[int] = None) -> List[IngestionOutcome]:
        """Crawl the index page and ingest what it lists."""
        manifest = await self.build_manifest()
        return await self.run(manifest, limit)

    async def run(self, manifest: Sequence[ManifestEntry],
                  limit: Optional[int] = None) -> List[IngestionOutcome]:
        """Ingest ``manifest`` entries in order and return one outcome per entry.

        Raises:
            StoreUnavailableError: the database went away; nothing else aborts the run
        """
        entries = apply_limit(manifest, limit if limit is not None else self.config.limit)
        if len(entries) < len(manifest):
            logger.info(f"Limit {limit or self.config.limit}: ingesting first {len(entries)} of {len(manifest)} posts")

        outcomes: List[IngestionOutcome] = []
        for position, entry in enumerate(entries, 1):
            logger.info(f"[{position}/{len(entries)}] Ingesting {entry.title} - {entry.url}")
            outcome = await self.ingest_entry(entry)
            record_ingestion_outcome(outcome.status.value, outcome.chunk_count)
            outcomes.append(outcome)

        counts = summarize(outcomes)
        logger.info(
            f"Ingestion finished: {counts['done']} ingested, {counts['skipped_existing']} already present, "
            f"{counts['skipped_short']} too short, {counts['failed']} failed"
        )
        return outcomes

    async def ingest_entry(self, entry: ManifestEntry) -> IngestionOutcome:
        outcome = IngestionOutcome(url=entry.url, title=entry.title)

        if await self.store.document_exists(entry.url):
            logger.info("  Already ingested, skipping.")
            outcome.status = IngestionStatus.SKIPPED_EXISTING
            return outcome

        try:
            outcome.stage = IngestionStage.FETCHING
            await asyncio.sleep(self.config.rate_limit_ms / 1000)
            html = await self.fetch_page(entry.url)

            outcome.stage = IngestionStage.EXTRACTING
            content = self.extractor.extract(html)
            if not self.extractor.has_enough_content(content):
                logger.warning(f"  Content too short ({len(content)} chars), skipping.")
                outcome.status = IngestionStatus.SKIPPED_SHORT
                return outcome

            outcome.chunk_count = await self._persist(entry, content, outcome)
            outcome.stage = IngestionStage.DONE
            outcome.status = IngestionStatus.DONE
            logger.info(
                f"  Successfully ingested {outcome.chunk_count} chunks.",
                extra={"url": outcome.url, "stage": outcome.stage.value}
            )

        except StoreUnavailableError:
            raise
        except RetryExhaustedError as e:
            outcome.attempts = e.attempts
            self._fail(outcome, e)
        except Exception as e:
            self._fail(outcome, e)

        return outcome

    async def _persist(self, entry: ManifestEntry, content: str, outcome: IngestionOutcome) -> int:
        """Post row, chunks and embeddings in one transaction."""
        async with self.store.transaction() as writer:
            outcome.stage = IngestionStage.CHUNKING
            document_id = await writer.insert_document(entry.url, entry.title, entry.year, content)
            logger.debug(f"  Inserted post with id {document_id}")

            chunks = self.chunker.chunk(content)
            logger.info(f"  Chunked into {len(chunks)} chunks.")
            if not chunks:
                raise DocumentRejected("No chunks generated")

            outcome.stage = IngestionStage.EMBEDDING
            embeddings = await self.embedder.embed(chunks)
            validate_embeddings(chunks, embeddings, self.embedder.dimensions)

            outcome.stage = IngestionStage.PERSISTING
            return await writer.insert_chunks(document_id, entry.title, entry.url, chunks, embeddings)

    def _fail(self, outcome: IngestionOutcome, error: Exception) -> None:
        outcome.status = IngestionStatus.FAILED
        outcome.reason = f"{type(error).__name__}: {error}"
        logger.error(
            f"  Failed to ingest {outcome.url} during {outcome.stage.value}: {error}",
            extra={"url": outcome.url, "stage": outcome.stage.value}
        )
