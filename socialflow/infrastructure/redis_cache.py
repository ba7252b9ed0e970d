# socialflow/infrastructure/redis_cache.py
import os
import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# shared by the rate limiter, the OAuth handshake store and the session blacklist
redis_client = aioredis.from_url(REDIS_URL, decode_responses=True)


async def close_redis(client=None) -> None:
    client = client or redis_client
    try:
        await client.aclose()
    except Exception as e:
        logger.warning("redis_close_failed", error=str(e))
