#!/usr/bin/env python3
"""Answer a question from the archive and list the posts it drew on."""

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
from server.answering import AnswerComposer, CompletionError, OpenAICompletionProvider

logger = logging.getLogger(__name__)


async def ask(config: ArchiveConfig, question: str) -> None:
    embedder = OpenAIEmbeddingProvider.from_config(config.embedding)
    completions = OpenAICompletionProvider(config.embedding.api_key, model=config.completion.model)
    try:
        async with ArchiveStore(config.postgres, dimensions=config.embedding.dimensions) as store:
            engine = RetrievalEngine(store, embedder, config.retrieval)
            composer = AnswerComposer(engine, completions, config.completion)
            answer = await composer.answer(question)
    finally:
        await embedder.close()
        await completions.close()

    print(answer.text)
    if answer.citations:
        print("\nSources:")
        for citation in answer.citations:
            print(f"- {citation.title}: {citation.url}")


def main():
    parser = argparse.ArgumentParser(description="Ask the archive a question")
    parser.add_argument("question", help="Question to answer")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    config = ArchiveConfig.from_env()
    setup_logging(level=args.log_level or config.log_level, use_json=config.log_json)

    try:
        asyncio.run(ask(config, args.question))
    except StoreUnavailableError as e:
        logger.error(str(e))
        sys.exit(1)
    except (EmbeddingError, CompletionError, ValueError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
