# config/cache.py
from typing import Optional
from redis.asyncio import Redis, from_url
from config.settings import settings

_client: Optional[Redis] = None


def redis_enabled() -> bool:
    return bool(settings.REDIS_URL)


async def get_redis() -> Redis:
    global _client
    if _client is None:
        if not settings.REDIS_URL:
            raise RuntimeError("REDIS_URL is not configured")
        _client = from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=False,  # repositories decode vectors themselves
            socket_keepalive=True,
            health_check_interval=30,
        )
        # Fail fast on first use if Redis is unreachable.
        await _client.ping()
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
