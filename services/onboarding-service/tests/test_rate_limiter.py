"""Tests for the submission rate limiters."""

from __future__ import annotations

import time

import fakeredis
import pytest

from onboarding.security.rate_limiter import SlidingWindowRateLimiter
from onboarding.security.redis_rate_limiter import RedisSlidingWindowRateLimiter


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


def test_redis_rate_limiter_allows_within_threshold(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=3, window_seconds=1, key_prefix="test"
    )
    key = "tenant:account"
    assert all(limiter.check(key).allowed for _ in range(3))


def test_redis_rate_limiter_blocks_excess_with_retry_hint(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=2, window_seconds=30, key_prefix="test"
    )
    key = "tenant:account"
    assert limiter.check(key).allowed
    assert limiter.check(key).allowed
    denied = limiter.check(key)
    assert not denied.allowed
    assert 1 <= denied.retry_after <= 30


def test_redis_rate_limiter_expires_entries(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_seconds=1, key_prefix="test"
    )
    key = "tenant:account"
    assert limiter.check(key).allowed
    assert not limiter.check(key).allowed
    time.sleep(1.1)
    assert limiter.check(key).allowed


def test_redis_rate_limiter_keys_are_independent(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_seconds=30, key_prefix="test"
    )
    assert limiter.check("tenant:a").allowed
    assert limiter.check("tenant:b").allowed
    assert not limiter.check("tenant:a").allowed


def test_memory_rate_limiter_blocks_and_recovers():
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=1)
    assert limiter.check("k").allowed
    assert limiter.check("k").allowed
    denied = limiter.check("k")
    assert not denied.allowed
    assert denied.retry_after == 1
    time.sleep(1.1)
    assert limiter.check("k").allowed


def test_memory_rate_limiter_forgets_idle_keys():
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=1)
    assert limiter.check("idle").allowed
    time.sleep(1.1)
    assert limiter.check("active").allowed
    assert "idle" not in limiter._events
    assert "active" in limiter._events
