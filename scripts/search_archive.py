#!/usr/bin/env python3
"""Run a hybrid (vector + full-text + trigram) search and print the fused ranking."""

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import ArchiveConfig
from indexer.embeddings import EmbeddingError, OpenAIEmbeddingProvider
from indexer.postgres_adapter import ArchiveStore, StoreUnavailableError
from indexer.retrieval import RetrievalEngine
from observability.logging import setup_logging

logger = logging.getLogger(__name__)


async def search(config: ArchiveConfig, query: str, k: int) -> None:
    embedder = OpenAIEmbeddingProvider.from_config(config.embedding)
    try:
        async with ArchiveStore(config.postgres, dimensions=config.embedding.dimensions) as store:
            engine = RetrievalEngine(store, embedder, config.retrieval)
            result = await engine.retrieve(query, k)
    finally:
        await embedder.close()

    if result.no_candidates:
        print("No candidates found.")
        return

    print(f"\nFound {len(result)} results (RRF Hybrid Search):\n")
    for i, candidate in enumerate(result.chunks, 1):
        signals = ", ".join(f"{name}={value:.4f}" for name, value in candidate.contributions.items())
        print(f"{i}. {candidate.chunk.title} (RRF Score: {candidate.score:.4f}; {signals})")
        print(f"   URL: {candidate.chunk.url}")
        print(f"   Text: {candidate.chunk.content[:200]}...")
        print()


def main():
    parser = argparse.ArgumentParser(description="Hybrid search over the archive")
    parser.add_argument("query", help="Search query")
    parser.add_argument("-k", "--limit", type=int, default=None, help="Number of chunks to return")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    config = ArchiveConfig.from_env()
    setup_logging(level=args.log_level or config.log_level, use_json=config.log_json)

    try:
        asyncio.run(search(config, args.query, args.limit or config.retrieval.top_k))
    except StoreUnavailableError as e:
        logger.error(str(e))
        sys.exit(1)
    except (EmbeddingError, ValueError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
