"""
Redis connection management for the replication task queue.
"""
import logging
from typing import Dict, Optional

import redis

from langshadow.core.config import settings

logger = logging.getLogger(__name__)

_pools: Dict[str, redis.ConnectionPool] = {}


def get_redis_client(url: Optional[str] = None) -> redis.Redis:
    """
    Get a Redis client backed by a shared connection pool.
    Safe to call multiple times - one pool per URL is reused.

    Args:
        url: Redis URL (defaults to settings.REDIS_URL)

    Returns:
        Redis client with decoded (str) responses
    """
    url = url or settings.REDIS_URL
    pool = _pools.get(url)
    if pool is None:
        pool = redis.ConnectionPool.from_url(
            url,
            max_connections=20,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        _pools[url] = pool
        logger.info(f"Redis connection pool created for {url}")
    return redis.Redis(connection_pool=pool)


def close_pools() -> None:
    """Disconnect every pool created by get_redis_client."""
    for url, pool in list(_pools.items()):
        pool.disconnect()
        _pools.pop(url, None)
    logger.info("Redis pools disconnected")
