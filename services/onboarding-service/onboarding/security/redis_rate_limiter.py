"""Redis-backed sliding window limiter shared by every service replica."""

from __future__ import annotations

import math
import time
from typing import Final

from redis import Redis
from redis.exceptions import ResponseError

from .rate_limiter import RateDecision


class RedisSlidingWindowRateLimiter:
    """Distributed sliding window limiter implemented with Redis sorted sets."""

    # Returns {allowed, oldest_score_ms}; oldest is only meaningful when denied.
    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local counter_key = key .. ':seq'
    local window_ms = tonumber(ARGV[1])
    local max_requests = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])

    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    local current = redis.call('ZCARD', key)
    if current >= max_requests then
        local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
        return {0, tonumber(oldest[2])}
    end
    local seq = redis.call('INCR', counter_key)
    redis.call('PEXPIRE', counter_key, window_ms)
    redis.call('ZADD', key, now_ms, tostring(now_ms) .. ':' .. tostring(seq))
    redis.call('PEXPIRE', key, window_ms)
    return {1, 0}
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "onboarding:submit",
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._script = client.register_script(self._LUA_SCRIPT)

    def check(self, key: str) -> RateDecision:
        now_ms = int(time.time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        try:
            allowed, oldest_ms = self._script(
                keys=[redis_key], args=[self._window_ms, self._max_requests, now_ms]
            )
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command `evalsha`" in message or "unknown command `eval`" in message:
                return self._check_fallback(redis_key, now_ms)
            raise
        if int(allowed) == 1:
            return RateDecision(allowed=True)
        return self._denied(now_ms, int(oldest_ms))

    def _check_fallback(self, redis_key: str, now_ms: int) -> RateDecision:
        """Non-atomic variant for Redis deployments without scripting."""
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        if self._client.zcard(redis_key) >= self._max_requests:
            oldest = self._client.zrange(redis_key, 0, 0, withscores=True)
            oldest_ms = int(oldest[0][1]) if oldest else now_ms
            return self._denied(now_ms, oldest_ms)
        seq = self._client.incr(f"{redis_key}:seq")
        self._client.pexpire(f"{redis_key}:seq", self._window_ms)
        self._client.zadd(redis_key, {f"{now_ms}:{seq}": now_ms})
        self._client.pexpire(redis_key, self._window_ms)
        return RateDecision(allowed=True)

    def _denied(self, now_ms: int, oldest_ms: int) -> RateDecision:
        wait_ms = self._window_ms - (now_ms - oldest_ms)
        return RateDecision(allowed=False, retry_after=max(1, math.ceil(wait_ms / 1000)))
