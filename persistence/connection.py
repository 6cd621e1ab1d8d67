"""
Redis connection for the document store.

Configuration comes from the environment (``.env`` is loaded by main):
- REDIS_URL: full connection URL; when set it wins over the fields below
- REDIS_HOST: Hostname (default: localhost)
- REDIS_PORT: Port (default: 6379)
- REDIS_DB: Database index (default: 0)
- REDIS_PASSWORD: Password (optional for a loopback-only instance)
"""

import os
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import redis
from redis.exceptions import RedisError, AuthenticationError

logger = logging.getLogger(__name__)


# The guard keeps a handful of small documents
MAX_CONNECTIONS = 10

# Fail fast if the server is down; the repository falls back to defaults
SOCKET_TIMEOUT_S = 5.0


@dataclass(frozen=True)
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RedisConfig":
        return cls(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", 6379)),
            db=int(os.getenv("REDIS_DB", 0)),
            password=os.getenv("REDIS_PASSWORD") or None,
            url=os.getenv("REDIS_URL") or None,
        )

    @property
    def location(self) -> str:
        """Printable target without credentials."""
        if self.url:
            return self.url.rsplit("@", 1)[-1]
        return f"{self.host}:{self.port}/{self.db}"

    def build_pool(self) -> redis.ConnectionPool:
        if self.url:
            return redis.ConnectionPool.from_url(
                self.url,
                decode_responses=True,
                max_connections=MAX_CONNECTIONS,
                socket_timeout=SOCKET_TIMEOUT_S,
            )
        return redis.ConnectionPool(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,  # Returns str instead of bytes
            max_connections=MAX_CONNECTIONS,
            socket_timeout=SOCKET_TIMEOUT_S,
        )


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """Process-wide Redis client, verified with a PING before first use."""
    config = RedisConfig.from_env()
    if config.url is None and config.password is None:
        logger.warning("REDIS_PASSWORD is not set, connecting without authentication.")

    try:
        client = redis.Redis(connection_pool=config.build_pool())
        client.ping()
        logger.info(f"Connected to Redis at {config.location}")
        return client

    except AuthenticationError:
        logger.critical("Redis authentication failed. Check REDIS_PASSWORD.")
        raise
    except RedisError as e:
        logger.critical(f"Could not connect to Redis at {config.location}: {e}")
        raise
