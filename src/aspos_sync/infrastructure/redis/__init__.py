"""Redis infrastructure with graceful degradation."""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

import orjson
import redis.asyncio as aioredis
import structlog

from aspos_sync.config import get_settings

logger = structlog.get_logger()

_redis_client: aioredis.Redis | None = None


async def connect_redis(url: str | None = None) -> aioredis.Redis | None:
    """Create and ping a new async Redis client, or None if Redis is unreachable."""
    client = aioredis.from_url(
        url or get_settings().redis_url,
        decode_responses=False,
        socket_connect_timeout=2,
        socket_timeout=2,
        retry_on_timeout=True,
    )
    try:
        await client.ping()
    except Exception as e:
        logger.warning("Redis unavailable, single-flight lease disabled", error=str(e))
        await client.aclose()
        return None
    return client


async def get_redis_client() -> aioredis.Redis | None:
    """Get or create the global async Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = await connect_redis()
        if _redis_client is not None:
            logger.info("Redis connection established")
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


@asynccontextmanager
async def redis_connection() -> AsyncIterator[aioredis.Redis | None]:
    """Short-lived Redis client for code running under its own event loop."""
    client = await connect_redis()
    try:
        yield client
    finally:
        if client is not None:
            await client.aclose()


class SingleFlightLease:
    """
    Expiring Redis lease ensuring one holder at a time across triggers.

    If Redis is unavailable every acquire succeeds, so single-flight is then
    not enforced.
    """

    def __init__(self, client: aioredis.Redis | None, name: str, ttl_seconds: int = 900):
        self.client = client
        self.key = f"aspos-sync:lease:{name}"
        self.ttl_seconds = ttl_seconds
        self.owner = uuid.uuid4().hex

    async def acquire(self) -> bool:
        if not self.client:
            logger.warning("Lease acquired without Redis", key=self.key)
            return True
        payload = orjson.dumps({"owner": self.owner, "acquired_at": datetime.now().isoformat()})
        try:
            return bool(await self.client.set(self.key, payload, nx=True, ex=self.ttl_seconds))
        except Exception as e:
            logger.warning("Lease acquire failed, proceeding", key=self.key, error=str(e))
            return True

    async def release(self) -> None:
        if not self.client:
            return
        try:
            data = await self.client.get(self.key)
            if data and orjson.loads(data).get("owner") == self.owner:
                await self.client.delete(self.key)
        except Exception as e:
            logger.warning("Lease release failed", key=self.key, error=str(e))

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        """Yield whether the lease was acquired; release it on exit if so."""
        acquired = await self.acquire()
        try:
            yield acquired
        finally:
            if acquired:
                await self.release()
