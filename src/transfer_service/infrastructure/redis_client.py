import redis.asyncio as redis
import structlog


logger = structlog.get_logger()


class RedisClient:
    """Async Redis connection owner for the shared rate-limit windows."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._client: redis.Redis[bytes] | None = None

    @property
    def client(self) -> "redis.Redis[bytes]":
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def connect(self) -> None:
        self._client = redis.from_url(self._url, decode_responses=False)
        await self._client.ping()
        logger.info("redis_connected", url=self._url)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected")

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.ping()
        except redis.RedisError as e:
            logger.warning("redis_health_check_failed", error=str(e))
            return False
        return True
