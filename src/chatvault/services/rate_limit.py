from dataclasses import dataclass
import logging
import time

from fastapi import HTTPException, Request, status
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from chatvault.config import RateLimitConfig


@dataclass
class RateLimitResult:
    allowed: bool
    count: int
    retry_after: int


class RateLimiter:
    """
    Fixed window counters kept in Redis, one key per (bucket, client, window).
    """
    __slots__ = ("_redis", "_logger", "_prefix")

    def __init__(self, redis: aioredis.Redis, logger: logging.Logger, prefix: str = "ratelimit"):
        self._redis = redis
        self._logger = logger
        self._prefix = prefix

    async def hit(self, bucket: str, identity: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = time.time()
        window = int(now // window_seconds)
        key = f"{self._prefix}:{bucket}:{identity}:{window}"

        # one key per window, TTL re-armed on each hit
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, window_seconds)
            count, _ = await pipe.execute()

        retry_after = int((window + 1) * window_seconds - now) + 1
        return RateLimitResult(allowed=count <= limit, count=count, retry_after=retry_after)


class RateLimitGuard:
    """
    FastAPI dependencies enforcing the general and the message specific limits.
    """

    def __init__(self, limiter: RateLimiter | None, config: RateLimitConfig, logger: logging.Logger):
        self.limiter = limiter if config.enabled else None
        self.config = config
        self.logger = logger

    async def general(self, request: Request):
        await self._check(
            request, "api", self.config.max_requests, self.config.window_seconds,
            "Too many requests from this IP, please try again later."
        )

    async def messages(self, request: Request):
        await self._check(
            request, "messages", self.config.message_max_requests, self.config.message_window_seconds,
            "Too many messages, please slow down."
        )

    async def _check(self, request: Request, bucket: str, limit: int, window_seconds: int, detail: str):
        if self.limiter is None:
            return

        identity = request.client.host if request.client else "unknown"
        try:
            result = await self.limiter.hit(bucket, identity, limit, window_seconds)
        except RedisError as e:
            # fail open, the limiter is not a correctness boundary
            self.logger.warning("Rate limiter unavailable, allowing request: %s", e)
            return

        if not result.allowed:
            self.logger.info("Rate limit exceeded for %s on %s", identity, bucket)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=detail,
                headers={"Retry-After": str(result.retry_after)}
            )
