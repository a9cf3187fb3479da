"""Redis client creation with credential-free logging of the target."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedisTarget:
    host: str
    port: int
    db: int
    password: Optional[str]

    @property
    def masked_url(self) -> str:
        return f"redis://{self.host}:{self.port}/{self.db}"


def parse_redis_target(redis_url: str) -> RedisTarget:
    parsed = urlparse(redis_url)
    try:
        db = int(parsed.path.strip("/") or "0") if parsed.path else 0
    except ValueError:
        db = 0
    return RedisTarget(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        db=db,
        password=parsed.password,
    )


def create_redis_client(redis_url: str, *, component: str, **kwargs: Any) -> Redis:
    target = parse_redis_target(redis_url)
    logger.info("Redis %s target: %s", component, target.masked_url)
    return Redis.from_url(redis_url, **kwargs)


__all__ = ["RedisTarget", "create_redis_client", "parse_redis_target"]
