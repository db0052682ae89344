"""
Redis client initialization.

Redis backs session revocation; tests swap `redis_client` for an in-memory
double.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError
from backend.app.core.config import settings


redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency returning the shared client."""
    return redis_client


async def ping_redis() -> bool:
    try:
        return await redis_client.ping()
    except (RedisError, OSError):
        return False
