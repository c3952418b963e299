"""Database configuration for the archive store.

Connection settings for the PostgreSQL + pgvector backend that holds
posts and their embedded chunks.
"""

import os
import logging
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


class PostgresConfig(BaseModel):
    """PostgreSQL connection configuration."""
    dsn: Optional[str] = Field(default=None, description="Full connection URL (DATABASE_URL)")
    host: str = "localhost"
    port: int = 5432
    database: str = "naval"
    user: str = "naval"
    password: str = "naval"
    min_connections: int = Field(default=1, ge=1)
    max_connections: int = Field(default=10, ge=1)
    command_timeout: int = Field(default=60, gt=0)

    @classmethod
    def from_env(cls) -> 'PostgresConfig':
        """Create configuration from environment variables."""
        return cls(
            dsn=os.getenv('DATABASE_URL') or None,
            host=os.getenv('POSTGRES_HOST', 'localhost'),
            port=int(os.getenv('POSTGRES_PORT', '5432')),
            database=os.getenv('POSTGRES_DB', 'naval'),
            user=os.getenv('POSTGRES_USER', 'naval'),
            password=os.getenv('POSTGRES_PASSWORD', 'naval'),
            min_connections=int(os.getenv('POSTGRES_MIN_CONNECTIONS', '1')),
            max_connections=int(os.getenv('POSTGRES_MAX_CONNECTIONS', '10')),
            command_timeout=int(os.getenv('POSTGRES_COMMAND_TIMEOUT', '60'))
        )

    @property
    def effective_host(self) -> str:
        """Host the pool will actually dial."""
        if self.dsn:
            return urlparse(self.dsn).hostname or "localhost"
        return self.host

    @property
    def effective_port(self) -> int:
        if self.dsn:
            return urlparse(self.dsn).port or 5432
        return self.port

    def is_local(self) -> bool:
        """Whether the configured database lives on this machine."""
        return self.effective_host in LOCAL_HOSTS

    def describe(self) -> str:
        """Connection target without credentials, for log lines."""
        if self.dsn:
            parsed = urlparse(self.dsn)
            return f"{parsed.hostname}:{parsed.port or 5432}{parsed.path}"
        return f"{self.host}:{self.port}/{self.database}"
