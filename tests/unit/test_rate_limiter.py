"""Unit tests for the sliding window rate limiters."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import WatchError

from transfer_service.domain.exceptions import RateLimitExceededError
from transfer_service.infrastructure.rate_limiter import InMemoryRateLimiter, SlidingWindowRateLimiter
from tests.conftest import START, FakeClock


class TestInMemoryRateLimiter:
    """Tests for InMemoryRateLimiter."""

    @pytest.mark.asyncio
    async def test_allows_up_to_max(self, rate_limiter: InMemoryRateLimiter) -> None:
        for _ in range(3):
            await rate_limiter.check("a@example.com:verification", 3600, 3)

        assert await rate_limiter.remaining("a@example.com:verification", 3600, 3) == 0

    @pytest.mark.asyncio
    async def test_rejects_over_max(self, rate_limiter: InMemoryRateLimiter) -> None:
        for _ in range(3):
            await rate_limiter.check("k:verification", 3600, 3)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await rate_limiter.check("k:verification", 3600, 3)

        assert exc_info.value.max_requests == 3
        assert exc_info.value.window_seconds == 3600

    @pytest.mark.asyncio
    async def test_rejected_check_consumes_no_slot(
        self,
        rate_limiter: InMemoryRateLimiter,
        clock: FakeClock,
    ) -> None:
        await rate_limiter.check("k:ledger", 60, 1)
        clock.advance(seconds=30)
        with pytest.raises(RateLimitExceededError):
            await rate_limiter.check("k:ledger", 60, 1)

        # only the admitted check at t=0 occupies the window
        clock.advance(seconds=30)
        await rate_limiter.check("k:ledger", 60, 1)

    @pytest.mark.asyncio
    async def test_window_slides(self, rate_limiter: InMemoryRateLimiter, clock: FakeClock) -> None:
        await rate_limiter.check("k:ledger", 60, 2)
        clock.advance(seconds=40)
        await rate_limiter.check("k:ledger", 60, 2)

        clock.advance(seconds=20)
        assert await rate_limiter.remaining("k:ledger", 60, 2) == 1
        await rate_limiter.check("k:ledger", 60, 2)

        with pytest.raises(RateLimitExceededError):
            await rate_limiter.check("k:ledger", 60, 2)

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, rate_limiter: InMemoryRateLimiter) -> None:
        await rate_limiter.check("a@example.com:ledger", 60, 1)
        await rate_limiter.check("b@example.com:ledger", 60, 1)
        await rate_limiter.check("a@example.com:verification", 60, 1)

    @pytest.mark.asyncio
    async def test_reset(self, rate_limiter: InMemoryRateLimiter) -> None:
        await rate_limiter.check("k:ledger", 60, 1)

        rate_limiter.reset("k:ledger")

        await rate_limiter.check("k:ledger", 60, 1)


class TestSlidingWindowRateLimiter:
    """Tests for the Redis backed limiter."""

    @pytest.fixture
    def mock_redis(self) -> AsyncMock:
        """Create mock Redis client."""
        redis = AsyncMock()
        redis.pipeline = MagicMock()
        return redis

    @pytest.fixture
    def limiter(self, mock_redis: AsyncMock, clock: FakeClock) -> SlidingWindowRateLimiter:
        return SlidingWindowRateLimiter(redis_client=mock_redis, clock=clock, key_prefix="test_ratelimit:")

    def _pipeline(self, mock_redis: AsyncMock, count: int, *results: object) -> MagicMock:
        pipe = MagicMock()
        pipe.__aenter__ = AsyncMock(return_value=pipe)
        pipe.__aexit__ = AsyncMock(return_value=None)
        pipe.watch = AsyncMock()
        pipe.zcount = AsyncMock(return_value=count)
        pipe.execute = AsyncMock(side_effect=list(results) or [[0, 1, True]])
        mock_redis.pipeline.return_value = pipe
        return pipe

    @pytest.mark.asyncio
    async def test_first_request_allowed(
        self,
        limiter: SlidingWindowRateLimiter,
        mock_redis: AsyncMock,
    ) -> None:
        pipe = self._pipeline(mock_redis, 0)

        await limiter.check("user@example.com:ledger", 900, 100)

        mock_redis.pipeline.assert_called_once_with(transaction=True)
        pipe.watch.assert_awaited_once_with("test_ratelimit:user@example.com:ledger")
        pipe.zcount.assert_awaited_once_with(
            "test_ratelimit:user@example.com:ledger", f"({START.timestamp() - 900}", "+inf"
        )
        pipe.multi.assert_called_once()
        pipe.zremrangebyscore.assert_called_once_with(
            "test_ratelimit:user@example.com:ledger", 0, START.timestamp() - 900
        )
        key, members = pipe.zadd.call_args.args
        assert key == "test_ratelimit:user@example.com:ledger"
        assert list(members.values()) == [START.timestamp()]
        pipe.expire.assert_called_once_with("test_ratelimit:user@example.com:ledger", timedelta(seconds=900))
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_at_limit_rejected_without_recording(
        self,
        limiter: SlidingWindowRateLimiter,
        mock_redis: AsyncMock,
    ) -> None:
        pipe = self._pipeline(mock_redis, 3)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await limiter.check("user@example.com:verification", 3600, 3)

        assert exc_info.value.key == "user@example.com:verification"
        pipe.multi.assert_not_called()
        pipe.zadd.assert_not_called()
        pipe.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_write_retries_check(
        self,
        limiter: SlidingWindowRateLimiter,
        mock_redis: AsyncMock,
    ) -> None:
        pipe = self._pipeline(mock_redis, 0, WatchError(), [0, 1, True])

        await limiter.check("user@example.com:ledger", 900, 100)

        assert pipe.watch.await_count == 2
        assert pipe.zcount.await_count == 2
        assert pipe.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_retry_sees_slot_taken_by_other_writer(
        self,
        limiter: SlidingWindowRateLimiter,
        mock_redis: AsyncMock,
    ) -> None:
        pipe = self._pipeline(mock_redis, 0, WatchError())
        pipe.zcount.side_effect = [0, 1]

        with pytest.raises(RateLimitExceededError):
            await limiter.check("user@example.com:verification", 3600, 1)

        assert pipe.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_remaining(self, limiter: SlidingWindowRateLimiter, mock_redis: AsyncMock) -> None:
        mock_redis.zcard.return_value = 2

        remaining = await limiter.remaining("user@example.com:ledger", 900, 100)

        assert remaining == 98
        mock_redis.zremrangebyscore.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_remaining_never_negative(self, limiter: SlidingWindowRateLimiter, mock_redis: AsyncMock) -> None:
        mock_redis.zcard.return_value = 150

        assert await limiter.remaining("user@example.com:ledger", 900, 100) == 0
