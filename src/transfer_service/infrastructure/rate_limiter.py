from collections import deque
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from redis.exceptions import WatchError
from ulid import ULID

from transfer_service.domain.exceptions import RateLimitExceededError
from transfer_service.domain.ports import Clock
from transfer_service.infrastructure.clock import SystemClock
from transfer_service.infrastructure.locks import KeyedLock
from transfer_service.infrastructure.metrics import RATE_LIMIT_EXCEEDED_TOTAL


if TYPE_CHECKING:
    import redis.asyncio as redis

logger = structlog.get_logger()


def _identifier_type(key: str) -> str:
    # keys look like "<email>:<purpose>"
    _, sep, purpose = key.rpartition(":")
    return purpose if sep else "unknown"


def _reject(key: str, current_count: int, max_requests: int, window_seconds: float) -> RateLimitExceededError:
    RATE_LIMIT_EXCEEDED_TOTAL.labels(identifier_type=_identifier_type(key)).inc()
    logger.warning(
        "rate_limit_exceeded",
        key=key,
        current_count=current_count,
        max_requests=max_requests,
        window_seconds=window_seconds,
    )
    return RateLimitExceededError(key, max_requests, window_seconds)


class InMemoryRateLimiter:
    """
    Sliding window rate limiter over per-key timestamp deques.

    Every admitted check consumes a slot; there is no separate commit step.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._windows: dict[str, deque[float]] = {}
        self._locks = KeyedLock()

    def _prune(self, key: str, window_seconds: float) -> deque[float]:
        now = self._clock.now().timestamp()
        window = self._windows.setdefault(key, deque())
        window_start = now - window_seconds
        while window and window[0] <= window_start:
            window.popleft()
        return window

    async def check(self, key: str, window_seconds: float, max_requests: int) -> None:
        async with self._locks.hold(key):
            window = self._prune(key, window_seconds)
            if len(window) >= max_requests:
                raise _reject(key, len(window), max_requests, window_seconds)
            window.append(self._clock.now().timestamp())

    async def remaining(self, key: str, window_seconds: float, max_requests: int) -> int:
        """Free slots for ``key`` without consuming one."""
        window = self._prune(key, window_seconds)
        return max(0, max_requests - len(window))

    def reset(self, key: str) -> None:
        self._windows.pop(key, None)


class SlidingWindowRateLimiter:
    """
    Sliding window rate limiter using Redis sorted sets.

    Shares the in-memory limiter's contract so several processes can enforce
    one window. Members are unique ids scored by timestamp. The count and the
    insert run as one WATCH/MULTI transaction; a concurrent writer on the same
    key aborts it and the check is retried.
    """

    def __init__(
        self,
        redis_client: "redis.Redis[bytes]",
        clock: Clock | None = None,
        key_prefix: str = "ratelimit:",
    ) -> None:
        self._redis = redis_client
        self._clock = clock or SystemClock()
        self._key_prefix = key_prefix

    async def check(self, key: str, window_seconds: float, max_requests: int) -> None:
        redis_key = f"{self._key_prefix}{key}"
        now = self._clock.now().timestamp()
        window_start = now - window_seconds

        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(redis_key)
                    # entries at or before window_start are outside the window
                    current_count = int(await pipe.zcount(redis_key, f"({window_start}", "+inf"))
                    if current_count >= max_requests:
                        raise _reject(key, current_count, max_requests, window_seconds)

                    pipe.multi()
                    pipe.zremrangebyscore(redis_key, 0, window_start)
                    pipe.zadd(redis_key, {str(ULID()): now})
                    pipe.expire(redis_key, timedelta(seconds=window_seconds))
                    await pipe.execute()
                    return
                except WatchError:
                    logger.debug("rate_limit_check_contended", key=key)

    async def remaining(self, key: str, window_seconds: float, max_requests: int) -> int:
        redis_key = f"{self._key_prefix}{key}"
        window_start = self._clock.now().timestamp() - window_seconds

        await self._redis.zremrangebyscore(redis_key, 0, window_start)
        current_count = await self._redis.zcard(redis_key)

        return max(0, max_requests - int(current_count))
