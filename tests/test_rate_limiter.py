"""
Tests for the Redis fixed-window rate limiter.

Run with: pytest tests/test_rate_limiter.py -v
"""

import pytest
import redis
from fastapi import HTTPException
from starlette.requests import Request

from buuk import rate_limiter


class FakePipeline:
    def __init__(self, store):
        self.store = store
        self.ops = []

    def incr(self, key):
        self.ops.append(("incr", key))

    def expire(self, key, seconds):
        self.ops.append(("expire", key))

    def execute(self):
        results = []
        for op, key in self.ops:
            if op == "incr":
                self.store[key] = self.store.get(key, 0) + 1
                results.append(self.store[key])
            else:
                results.append(True)
        return results


class FakeRedis:
    def __init__(self):
        self.store = {}

    def pipeline(self):
        return FakePipeline(self.store)


class DownRedis:
    def pipeline(self):
        raise redis.ConnectionError("connection refused")


def make_request(ip="203.0.113.7") -> Request:
    return Request({"type": "http", "method": "POST", "path": "/", "headers": [], "client": (ip, 1234)})


def test_counts_within_one_window():
    client = FakeRedis()
    results = [rate_limiter.check_rate_limit("k", 2, 60, client) for _ in range(3)]

    assert [allowed for allowed, _, _ in results] == [True, True, False]
    assert results[-1][1] == 3
    assert 0 < results[-1][2] <= 60


@pytest.mark.asyncio
async def test_limit_exceeded_raises_429(monkeypatch):
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", True)
    fake = FakeRedis()
    monkeypatch.setattr(rate_limiter, "get_redis_client", lambda: fake)
    limiter = rate_limiter.create_rate_limiter(limit=1, window_seconds=60, key_prefix="test")

    await limiter(make_request())
    with pytest.raises(HTTPException) as exc_info:
        await limiter(make_request())

    assert exc_info.value.status_code == 429
    assert "Retry-After" in exc_info.value.headers

    # Other clients have their own counter
    await limiter(make_request(ip="198.51.100.1"))


@pytest.mark.asyncio
async def test_redis_outage_fails_open(monkeypatch):
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(rate_limiter, "get_redis_client", lambda: DownRedis())
    limiter = rate_limiter.create_rate_limiter(limit=1, window_seconds=60, key_prefix="test")

    await limiter(make_request())
    await limiter(make_request())


@pytest.mark.asyncio
async def test_disabled_limiter_never_touches_redis(monkeypatch):
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", False)

    def explode():
        raise AssertionError("redis should not be used")

    monkeypatch.setattr(rate_limiter, "get_redis_client", explode)

    await rate_limiter.rate_limit_webhooks(make_request())
