from __future__ import annotations

import logging
from functools import lru_cache

import redis
from redis import Redis

logger = logging.getLogger(__name__)


@lru_cache
def get_redis(url: str) -> Redis | None:
    try:
        client: Redis = redis.from_url(url, decode_responses=True)
        client.ping()
        return client
    except redis.RedisError as exc:
        logger.warning("Redis unavailable; rate limiting disabled: %s", exc)
        return None
