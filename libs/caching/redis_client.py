"""
Shared Redis connection for the thread cache and ownership registry.

Only used when ``PEPPER_CACHE_BACKEND=redis``. One pooled client per
process; a failed connection is remembered so every turn does not pay the
connect timeout again, and callers fall back to process memory.
"""

from typing import Optional

import redis.asyncio as redis
import structlog

from libs.common.settings import Settings, get_settings

logger = structlog.get_logger(__name__)

MAX_CONNECTIONS = 20
SOCKET_TIMEOUT_SECONDS = 5

_client: Optional[redis.Redis] = None
_unavailable = False


def _redacted(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url.split("//")[-1]


async def get_redis_client(settings: Optional[Settings] = None, use_fake: Optional[bool] = None) -> Optional[redis.Redis]:
    """
    Pooled client, or None when Redis is not configured or unreachable.

    Args:
        settings: Settings to read ``redis_url`` from (defaults to the cached ones)
        use_fake: Use fakeredis; by default only under test settings

    Returns:
        The shared client, or None
    """
    global _client, _unavailable

    settings = settings or get_settings()
    if use_fake is None:
        use_fake = settings.is_test

    if use_fake:
        from fakeredis import aioredis as fakeredis

        if _client is None:
            _client = fakeredis.FakeRedis(decode_responses=True)
            logger.info("Thread cache using fakeredis")
        return _client

    if _unavailable:
        return None

    if _client is not None:
        try:
            await _client.ping()
            return _client
        except Exception as e:
            logger.warning("Redis ping failed, reconnecting", error=str(e))
            _client = None

    if not settings.redis_url:
        logger.warning("PEPPER_REDIS_URL not configured, thread cache stays in process memory")
        _unavailable = True
        return None

    try:
        _client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=MAX_CONNECTIONS,
            socket_timeout=SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
            retry_on_timeout=True,
        )
        await _client.ping()
        logger.info("Redis thread cache connected", url=_redacted(settings.redis_url))
        return _client
    except Exception as e:
        logger.error(
            "Redis connection failed",
            error=str(e),
            error_type=type(e).__name__,
            redis_url=_redacted(settings.redis_url),
        )
        _unavailable = True
        _client = None
        return None


async def close_redis_client() -> None:
    global _client

    if _client is None:
        return
    try:
        await _client.aclose()
        logger.info("Redis client closed")
    except Exception as e:
        logger.warning("Error closing Redis client", error=str(e))
    finally:
        _client = None


async def reset_redis_client() -> None:
    """Close the client and forget earlier connection failures."""
    global _unavailable

    await close_redis_client()
    _unavailable = False
