"""Redis configuration."""
import os
from typing import Optional

import redis

from rcm.utils.logger import get_logger

logger = get_logger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """
    Get the shared Redis client.

    The client is created lazily; connection errors surface on first use and
    are handled by the caller (the stats cache degrades to a miss).
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.Redis(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", "6379")),
            password=os.getenv("REDIS_PASSWORD") or None,
            db=int(os.getenv("REDIS_DB", "0")),
            decode_responses=True,
            socket_connect_timeout=5,
        )
        logger.info("Redis client created", host=os.getenv("REDIS_HOST", "localhost"))
    return _redis_client


def close_redis_client() -> None:
    """Close the shared client on shutdown."""
    global _redis_client
    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None
