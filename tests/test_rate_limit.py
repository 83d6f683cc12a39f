import logging

import pytest
from fastapi import HTTPException
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.requests import Request

from chatvault.config import RateLimitConfig
from chatvault.services.rate_limit import RateLimiter, RateLimitGuard


class FakePipeline:
    def __init__(self, redis, transaction):
        self.redis = redis
        self.transaction = transaction
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    def incr(self, key):
        self.commands.append(("incr", key))
        return self

    def expire(self, key, seconds):
        self.commands.append(("expire", key, seconds))
        return self

    async def execute(self):
        self.redis.executed.append((self.transaction, [c[0] for c in self.commands]))
        results = []
        for command in self.commands:
            if command[0] == "incr":
                self.redis.counters[command[1]] = self.redis.counters.get(command[1], 0) + 1
                results.append(self.redis.counters[command[1]])
            else:
                self.redis.expiries[command[1]] = command[2]
                results.append(True)
        return results


class FakeRedis:
    def __init__(self):
        self.counters = {}
        self.expiries = {}
        self.executed = []

    def pipeline(self, transaction=True):
        return FakePipeline(self, transaction)


class BrokenPipeline(FakePipeline):
    async def execute(self):
        raise RedisConnectionError("down")


class BrokenRedis:
    def pipeline(self, transaction=True):
        return BrokenPipeline(self, transaction)


def make_request(host="10.0.0.1"):
    return Request({"type": "http", "client": (host, 5000), "headers": [], "method": "GET", "path": "/"})


@pytest.fixture
def logger():
    return logging.getLogger("chatvault.tests")


async def test_limiter_counts_per_window(logger):
    redis = FakeRedis()
    limiter = RateLimiter(redis, logger)

    results = [await limiter.hit("messages", "10.0.0.1", limit=2, window_seconds=60) for _ in range(3)]

    assert [r.allowed for r in results] == [True, True, False]
    assert [r.count for r in results] == [1, 2, 3]
    assert list(redis.expiries.values()) == [60]
    # counter and TTL travel together in one MULTI/EXEC
    assert redis.executed == [(True, ["incr", "expire"])] * 3
    assert 0 < results[-1].retry_after <= 61


async def test_guard_rejects_with_429(logger):
    config = RateLimitConfig(message_max_requests=1, message_window_seconds=60)
    guard = RateLimitGuard(RateLimiter(FakeRedis(), logger), config, logger)

    await guard.messages(make_request())
    with pytest.raises(HTTPException) as exc:
        await guard.messages(make_request())

    assert exc.value.status_code == 429
    assert "Retry-After" in exc.value.headers


async def test_guard_counts_clients_separately(logger):
    config = RateLimitConfig(max_requests=1)
    guard = RateLimitGuard(RateLimiter(FakeRedis(), logger), config, logger)

    await guard.general(make_request("10.0.0.1"))
    await guard.general(make_request("10.0.0.2"))


async def test_guard_fails_open_when_redis_is_down(logger):
    guard = RateLimitGuard(RateLimiter(BrokenRedis(), logger), RateLimitConfig(), logger)

    await guard.general(make_request())


async def test_disabled_guard_never_calls_redis(logger):
    redis = FakeRedis()
    guard = RateLimitGuard(RateLimiter(redis, logger), RateLimitConfig(enabled=False), logger)

    for _ in range(5):
        await guard.messages(make_request())
    assert redis.counters == {}
