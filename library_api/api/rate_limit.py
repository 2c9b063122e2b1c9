from __future__ import annotations

import logging
import time
from typing import Callable, cast

from fastapi import HTTPException, Request
from library_api.core.config import Settings
from library_api.core.redis_client import get_redis
from redis import Redis, RedisError

logger = logging.getLogger(__name__)


def rate_limiter(scope: str) -> Callable[[Request], None]:
    """Fixed-window limit per client address using Redis INCR + EXPIRE.

    Window and limit come from the app's settings. If Redis is unavailable
    the limiter lets requests through.
    """

    def _dep(request: Request) -> None:
        settings: Settings = request.app.state.settings
        if not settings.rate_limit_enabled:
            return

        r = get_redis(settings.redis_url)
        if r is None:
            return

        window_seconds = settings.rate_limit_window_seconds
        now = int(time.time())
        bucket = now // window_seconds
        client = request.client.host if request.client else "unknown"
        key = f"rl:{scope}:{client}:{bucket}"

        try:
            count = cast(int, cast(Redis, r).incr(key))
            if count == 1:
                cast(Redis, r).expire(key, window_seconds)
        except RedisError as exc:
            logger.warning("Rate limiter skipped, redis error: %s", exc)
            return

        if count > settings.rate_limit_max_requests:
            retry_after = max(1, window_seconds - (now % window_seconds))
            raise HTTPException(
                status_code=429,
                detail="Too many requests, please try again later",
                headers={"Retry-After": str(retry_after)},
            )

    return _dep
