"""Pipeline and retrieval settings.

Every tunable of the ingestion pipeline and the hybrid retrieval engine
lives here, grouped by component, with ``from_env()`` constructors that
read the process environment (after loading ``.env.local`` and ``.env``).
"""

import os
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from .database import PostgresConfig

logger = logging.getLogger(__name__)

DEFAULT_INDEX_URL = "https://nav.al/archive"
DEFAULT_USER_AGENT = "NavalArchiveChatBot/1.0 (+https://nav.al/archive)"


def load_env_files(base_dir: Optional[Path] = None) -> None:
    """Load ``.env.local`` then ``.env``; already-set variables win."""
    base = Path(base_dir) if base_dir else Path.cwd()
    load_dotenv(base / ".env.local")
    load_dotenv(base / ".env")


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}")
        return None


class FetchConfig(BaseModel):
    """HTTP fetch behaviour for a single request chain."""
    timeout_ms: int = Field(default=20_000, gt=0)
    max_redirects: int = Field(default=5, ge=0)
    user_agent: str = DEFAULT_USER_AGENT
    error_body_chars: int = Field(default=200, ge=0)


class IngestConfig(BaseModel):
    """Manifest crawl and per-document ingestion loop."""
    index_url: str = DEFAULT_INDEX_URL
    rate_limit_ms: int = Field(default=1000, ge=0)
    max_retries: int = Field(default=3, ge=1)
    backoff_base_ms: int = Field(default=500, ge=0)
    max_backoff_ms: int = Field(default=8000, ge=0)
    min_content_length: int = Field(default=200, ge=0)
    limit: Optional[int] = None
    manifest_path: str = "data/manifest.json"


class ChunkConfig(BaseModel):
    """Token window sizing; the window must strictly exceed the overlap."""
    window_size: int = Field(default=600, gt=0)
    overlap: int = Field(default=100, ge=0)

    @model_validator(mode='after')
    def _overlap_below_window(self) -> 'ChunkConfig':
        if self.overlap >= self.window_size:
            raise ValueError(
                f"overlap ({self.overlap}) must be smaller than window_size ({self.window_size})"
            )
        return self


class EmbeddingConfig(BaseModel):
    api_key: str = ""
    model: str = "text-embedding-3-small"
    dimensions: int = Field(default=1536, gt=0)
    batch_size: int = Field(default=256, gt=0)


class CompletionConfig(BaseModel):
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    fallback_temperature: float = 0.7


class RetrievalConfig(BaseModel):
    """Candidate pool sizes and fusion weights."""
    vector_k: int = Field(default=80, gt=0)
    lexical_k: int = Field(default=80, gt=0)
    trigram_k: int = Field(default=60, gt=0)
    top_k: int = Field(default=8, gt=0)
    vector_weight: float = Field(default=1.0, ge=0)
    lexical_weight: float = Field(default=1.0, ge=0)
    trigram_weight: float = Field(default=0.8, ge=0)
    dedup_prefix_chars: int = Field(default=120, gt=0)


class ArchiveConfig(BaseModel):
    """Top-level configuration for ingestion, retrieval and answering."""
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    chunking: ChunkConfig = Field(default_factory=ChunkConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls, load_files: bool = True) -> 'ArchiveConfig':
        """Create configuration from environment variables."""
        if load_files:
            load_env_files()

        return cls(
            postgres=PostgresConfig.from_env(),
            fetch=FetchConfig(
                timeout_ms=int(os.getenv('FETCH_TIMEOUT_MS', '20000')),
                max_redirects=int(os.getenv('FETCH_MAX_REDIRECTS', '5')),
                user_agent=os.getenv('FETCH_USER_AGENT', DEFAULT_USER_AGENT),
            ),
            ingest=IngestConfig(
                index_url=os.getenv('ARCHIVE_INDEX_URL', DEFAULT_INDEX_URL),
                rate_limit_ms=int(os.getenv('INGEST_RATE_LIMIT_MS', '1000')),
                max_retries=int(os.getenv('INGEST_MAX_RETRIES', '3')),
                limit=_optional_int('INGEST_LIMIT'),
                manifest_path=os.getenv('INGEST_MANIFEST_PATH', 'data/manifest.json'),
            ),
            chunking=ChunkConfig(
                window_size=int(os.getenv('CHUNK_TOKENS', '600')),
                overlap=int(os.getenv('CHUNK_OVERLAP_TOKENS', '100')),
            ),
            embedding=EmbeddingConfig(
                api_key=os.getenv('OPENAI_API_KEY', ''),
                model=os.getenv('EMBEDDING_MODEL', 'text-embedding-3-small'),
                dimensions=int(os.getenv('EMBEDDING_DIMENSIONS', '1536')),
            ),
            completion=CompletionConfig(
                model=os.getenv('OPENAI_MODEL', 'gpt-4o-mini'),
            ),
            retrieval=RetrievalConfig(
                vector_k=int(os.getenv('RETRIEVAL_VECTOR_K', '80')),
                lexical_k=int(os.getenv('RETRIEVAL_FTS_K', '80')),
                trigram_k=int(os.getenv('RETRIEVAL_TRGM_K', '60')),
                top_k=int(os.getenv('RETRIEVAL_TOP_K', '8')),
            ),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            log_json=os.getenv('LOG_JSON', '').lower() in ('1', 'true', 'yes'),
        )
