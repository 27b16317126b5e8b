"""Rate limiting and backoff for search API calls.

Implements:
- Exponential backoff strategy for 429/5xx errors
- Redis-backed token bucket and inflight limit, shared by the API
  process and the Celery worker
- Advisory tracking of X-RateLimit-Remaining / X-RateLimit-Reset headers

Usage:
    config = RateLimitConfig(provider_id="arctic_shift", requests_per_minute=60)
    limiter = RateLimiter(redis.asyncio.from_url(settings.redis_url), config)

    async with limiter:
        response = await client.get(url)
    state.update_from_headers(response.headers)
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol


class AsyncRedisProtocol(Protocol):
    """Protocol for async Redis client."""

    async def get(self, key: str) -> Optional[bytes]: ...
    async def incr(self, key: str) -> int: ...
    async def decr(self, key: str) -> int: ...
    async def expire(self, key: str, seconds: int) -> bool: ...
    def pipeline(self) -> Any: ...


class RateLimitExceeded(Exception):
    """Raised when the shared request budget could not be acquired in time."""

    pass


@dataclass
class BackoffStrategy:
    """Exponential backoff strategy for retries.

    With the defaults a request is tried at most 3 times, waiting 1s and
    then 2s between attempts.

    Attributes:
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay in seconds.
        multiplier: Multiplier for exponential increase.
        jitter: Whether to add random jitter.
        max_retries: Maximum number of attempts per request.
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = False
    max_retries: int = 3

    # Optional per-status base delays (e.g. {503: 5.0})
    status_delays: dict[int, float] = field(default_factory=dict)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a retry attempt.

        Args:
            attempt: The attempt number that just failed (1-based).

        Returns:
            Delay in seconds before the next attempt.
        """
        return self._backoff(self.base_delay, attempt)

    def get_delay_for_status(
        self,
        status_code: int,
        attempt: int,
        retry_after: Optional[float] = None,
    ) -> float:
        """Calculate delay based on HTTP status code.

        Args:
            status_code: The HTTP status code.
            attempt: The attempt number that just failed (1-based).
            retry_after: Optional Retry-After header value in seconds.

        Returns:
            Delay in seconds before the next attempt.
        """
        if retry_after is not None:
            return min(max(retry_after, self.get_delay(attempt)), self.max_delay)

        base = self.status_delays.get(status_code, self.base_delay)
        return self._backoff(base, attempt)

    def _backoff(self, base: float, attempt: int) -> float:
        delay = base * (self.multiplier ** (attempt - 1))

        if self.jitter:
            # +/- 25% before capping
            jitter_range = delay * 0.25
            delay = delay + random.uniform(-jitter_range, jitter_range)

        delay = min(delay, self.max_delay)

        return max(0.1, delay)

    def is_retryable_status(self, status_code: int) -> bool:
        """429 and 5xx are transient; every other status is final."""
        return status_code == 429 or 500 <= status_code < 600

    def should_retry(self, status_code: int, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            status_code: The HTTP status code (0 for network errors).
            attempt: The attempt number that just failed (1-based).

        Returns:
            True if another attempt is allowed.
        """
        if attempt >= self.max_retries:
            return False

        if status_code == 0:
            return True

        return self.is_retryable_status(status_code)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting a provider.

    Attributes:
        provider_id: Unique identifier for the provider (e.g., "arctic_shift").
        requests_per_minute: Maximum requests per minute (token refill rate).
        max_concurrent: Maximum concurrent requests allowed.
        bucket_size: Maximum tokens in bucket (burst capacity).
        acquire_timeout: Seconds to wait for a token and slot.
    """

    provider_id: str
    requests_per_minute: int = 60
    max_concurrent: int = 4
    bucket_size: int = 0  # 0 means same as requests_per_minute
    acquire_timeout: float = 60.0

    def __post_init__(self):
        if self.bucket_size == 0:
            self.bucket_size = self.requests_per_minute


class RateLimiter:
    """Redis-backed rate limiter combining token bucket and concurrency limiting.

    Uses Redis keys:
    - rate:{provider_id}:tokens - Current token count
    - rate:{provider_id}:last_refill - Timestamp of last refill
    - rate:{provider_id}:inflight - Current inflight request count
    """

    def __init__(self, redis: AsyncRedisProtocol, config: RateLimitConfig):
        """Initialize the rate limiter.

        Args:
            redis: Async Redis client.
            config: Rate limit configuration.
        """
        self.redis = redis
        self.config = config

        self._tokens_key = f"rate:{config.provider_id}:tokens"
        self._refill_key = f"rate:{config.provider_id}:last_refill"
        self._inflight_key = f"rate:{config.provider_id}:inflight"

        # Tokens per second
        self._refill_rate = config.requests_per_minute / 60.0

    async def acquire_token(self, now: Optional[float] = None) -> bool:
        """Take one token from the bucket, refilling it for the time elapsed.

        Returns:
            True if a token was taken, False if the bucket is empty.
        """
        tokens_raw = await self.redis.get(self._tokens_key)
        last_refill_raw = await self.redis.get(self._refill_key)

        now = time.time() if now is None else now

        if tokens_raw is None:
            tokens = float(self.config.bucket_size)
            last_refill = now
        else:
            tokens = float(tokens_raw)
            last_refill = float(last_refill_raw) if last_refill_raw else now

        elapsed = max(now - last_refill, 0.0)
        tokens = min(tokens + elapsed * self._refill_rate, self.config.bucket_size)

        if tokens < 1:
            return False

        pipe = self.redis.pipeline()
        pipe.set(self._tokens_key, str(tokens - 1))
        pipe.set(self._refill_key, str(now))
        pipe.expire(self._tokens_key, 3600)
        pipe.expire(self._refill_key, 3600)
        await pipe.execute()
        return True

    async def acquire_slot(self) -> bool:
        """Take one inflight slot.

        Returns:
            True if a slot was taken, False if at the concurrency limit.
        """
        count = await self.redis.incr(self._inflight_key)

        # Expire so a crashed process cannot leak slots forever
        await self.redis.expire(self._inflight_key, 300)

        if count > self.config.max_concurrent:
            await self.redis.decr(self._inflight_key)
            return False

        return True

    async def release_slot(self) -> None:
        """Release an inflight slot."""
        await self.redis.decr(self._inflight_key)

    async def acquire(self, wait: bool = False, timeout: Optional[float] = None) -> bool:
        """Acquire both a token and a slot.

        Args:
            wait: Whether to wait for availability.
            timeout: Maximum time to wait in seconds (defaults to the config).

        Returns:
            True if acquired, False if not available in time.
        """
        timeout = self.config.acquire_timeout if timeout is None else timeout
        start_time = time.monotonic()
        attempt = 0
        backoff = BackoffStrategy(base_delay=0.1, max_delay=5.0)

        while True:
            attempt += 1

            if await self.acquire_slot():
                if await self.acquire_token():
                    return True
                await self.release_slot()

            if not wait or (time.monotonic() - start_time) >= timeout:
                return False

            await asyncio.sleep(backoff.get_delay(attempt))

    async def release(self) -> None:
        """Release acquired resources. Tokens refill on their own."""
        await self.release_slot()

    async def __aenter__(self) -> "RateLimiter":
        if not await self.acquire(wait=True):
            raise RateLimitExceeded(
                f"Rate limit exceeded for provider {self.config.provider_id}"
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()

    async def get_stats(self) -> dict[str, Any]:
        """Current limiter state, for diagnostics."""
        tokens_raw = await self.redis.get(self._tokens_key)
        inflight_raw = await self.redis.get(self._inflight_key)

        return {
            "provider_id": self.config.provider_id,
            "tokens_available": int(float(tokens_raw)) if tokens_raw else self.config.bucket_size,
            "bucket_size": self.config.bucket_size,
            "inflight_count": int(inflight_raw) if inflight_raw else 0,
            "max_concurrent": self.config.max_concurrent,
            "requests_per_minute": self.config.requests_per_minute,
        }


class RateLimitState:
    """What the upstream advertises through its rate limit headers.

    Header values are advisory: missing or malformed headers leave the
    state unchanged. The request budget itself lives in RateLimiter.
    """

    def __init__(self):
        self.remaining: Optional[int] = None
        self.reset_at: Optional[float] = None

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Record X-RateLimit-Remaining / X-RateLimit-Reset (unix seconds)."""
        remaining = headers.get("X-RateLimit-Remaining") or headers.get("x-ratelimit-remaining")
        reset = headers.get("X-RateLimit-Reset") or headers.get("x-ratelimit-reset")

        if remaining is not None:
            try:
                self.remaining = int(float(remaining))
            except (TypeError, ValueError):
                pass
        if reset is not None:
            try:
                self.reset_at = float(reset)
            except (TypeError, ValueError):
                pass

    def wait_time(self, max_wait: float = 60.0, now: Optional[float] = None) -> float:
        """Seconds to wait before the next request, capped at ``max_wait``.

        Only an exhausted budget (remaining 0) with a known reset time waits.
        """
        now = time.time() if now is None else now
        wait = 0.0

        if self.remaining is not None and self.remaining <= 0 and self.reset_at:
            wait = self.reset_at - now

        return min(max(wait, 0.0), max_wait)

    def reset(self) -> None:
        """Forget all recorded state."""
        self.remaining = None
        self.reset_at = None


__all__ = [
    "AsyncRedisProtocol",
    "BackoffStrategy",
    "RateLimitConfig",
    "RateLimitExceeded",
    "RateLimitState",
    "RateLimiter",
]
