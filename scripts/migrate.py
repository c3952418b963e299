#!/usr/bin/env python3
"""Create the archive schema (extensions, tables, indexes) if it is missing."""

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import ArchiveConfig
from indexer.postgres_adapter import ArchiveStore, StoreUnavailableError
from observability.logging import setup_logging

logger = logging.getLogger(__name__)


async def migrate(config: ArchiveConfig) -> None:
    async with ArchiveStore(config.postgres, dimensions=config.embedding.dimensions) as store:
        await store.ensure_schema()
        stats = await store.get_stats()
    logger.info(f"Database schema ensured ({stats.get('document_count', 0)} posts, "
                f"{stats.get('chunk_count', 0)} chunks)")


def main():
    parser = argparse.ArgumentParser(description="Ensure the archive database schema")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    config = ArchiveConfig.from_env()
    setup_logging(level=args.log_level or config.log_level, use_json=config.log_json)

    try:
        asyncio.run(migrate(config))
    except StoreUnavailableError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
