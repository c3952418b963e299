#!/usr/bin/env python3
"""Crawl the archive index and ingest every post that is not stored yet.

Usage:
    python scripts/ingest_archive.py [--limit N] [--manifest-only]
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import ArchiveConfig
from indexer.embeddings import EmbeddingError, OpenAIEmbeddingProvider
from indexer.postgres_adapter import ArchiveStore, StoreUnavailableError
from observability.logging import setup_logging
from observability.prometheus_metrics import get_metrics_text
from pipelines.chunker import TokenChunker
from pipelines.fetcher import FetchError, PageFetcher
from pipelines.ingest import IngestionOrchestrator, summarize
from pipelines.manifest import ManifestBuilder, save_manifest
from pipelines.retry import fetch_with_retries

logger = logging.getLogger(__name__)


async def build_manifest_only(config: ArchiveConfig) -> None:
    async with PageFetcher(config.fetch) as fetcher:
        async def fetch_page(url: str) -> str:
            return await fetch_with_retries(
                fetcher.fetch, url,
                max_attempts=config.ingest.max_retries,
                backoff_base=config.ingest.backoff_base_ms / 1000,
                max_backoff=config.ingest.max_backoff_ms / 1000
            )

        manifest = await ManifestBuilder(config.ingest.index_url, fetch_page).build_manifest()
    path = save_manifest(manifest, config.ingest.manifest_path)
    logger.info(f"Wrote {len(manifest)} entries to {path}")


async def ingest(config: ArchiveConfig, limit: Optional[int]) -> dict:
    embedder = OpenAIEmbeddingProvider.from_config(config.embedding)
    chunker = TokenChunker(
        window_size=config.chunking.window_size,
        overlap=config.chunking.overlap,
        model_name=config.embedding.model
    )

    try:
        async with ArchiveStore(config.postgres, dimensions=config.embedding.dimensions) as store:
            await store.ensure_schema()
            async with PageFetcher(config.fetch) as fetcher:
                orchestrator = IngestionOrchestrator(
                    store=store,
                    fetcher=fetcher,
                    embedder=embedder,
                    chunker=chunker,
                    config=config.ingest
                )
                outcomes = await orchestrator.ingest_archive(limit)
    finally:
        await embedder.close()

    for outcome in outcomes:
        if not outcome.ok:
            logger.warning(f"FAILED {outcome.url} at {outcome.stage.value}: {outcome.reason}")
    return summarize(outcomes)


def main():
    parser = argparse.ArgumentParser(description="Ingest the archive into Postgres")
    parser.add_argument("--limit", type=int, default=None, help="Only ingest the first N posts")
    parser.add_argument("--manifest-only", action="store_true", help="Crawl the index and write the manifest")
    parser.add_argument("--manifest-path", default=None, help="Where to cache the manifest JSON")
    parser.add_argument("--metrics", action="store_true", help="Print Prometheus metrics when done")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    config = ArchiveConfig.from_env()
    if args.manifest_path:
        config.ingest.manifest_path = args.manifest_path
    setup_logging(level=args.log_level or config.log_level, use_json=config.log_json)

    try:
        if args.manifest_only:
            asyncio.run(build_manifest_only(config))
        else:
            counts = asyncio.run(ingest(config, args.limit))
            print(", ".join(f"{status}={count}" for status, count in counts.items()))
    except StoreUnavailableError as e:
        logger.error(str(e))
        sys.exit(1)
    except (EmbeddingError, FetchError) as e:
        logger.error(f"Fatal ingest error: {e}")
        sys.exit(1)

    if args.metrics:
        print(get_metrics_text())


if __name__ == "__main__":
    main()
