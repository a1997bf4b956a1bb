"""Redis caching utilities."""
import json
from typing import Any, Optional

import redis

from rcm.config.cache_ttl import get_ttl
from rcm.config.redis import get_redis_client
from rcm.utils.logger import get_logger

logger = get_logger(__name__)

CACHE_ERRORS = (redis.RedisError, TypeError, ValueError)


class Cache:
    """
    Redis JSON cache with a key namespace.

    Cache failures are logged and reported as a miss (or False); they never
    fail the caller.
    """

    def __init__(self, namespace: str = "rcm", client: Optional[redis.Redis] = None):
        self.namespace = namespace
        self.redis = client if client is not None else get_redis_client()

    def _make_key(self, key: str) -> str:
        """Create namespaced cache key."""
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None if missing."""
        try:
            value = self.redis.get(self._make_key(key))
            if value is None:
                return None
            return json.loads(value)
        except CACHE_ERRORS as e:
            logger.warning("Cache get failed", key=key, error=str(e))
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key such as "posting_stats:op-1"
            value: JSON serializable value (Decimals and dates become strings)
            ttl_seconds: Time to live. When None it is inferred from the key
                prefix; 0 or negative stores the key without expiry.
        """
        try:
            serialized = json.dumps(value, default=str)
            if ttl_seconds is None:
                ttl_seconds = get_ttl(key.split(":", 1)[0])
            if ttl_seconds and ttl_seconds > 0:
                self.redis.setex(self._make_key(key), ttl_seconds, serialized)
            else:
                self.redis.set(self._make_key(key), serialized)
            return True
        except CACHE_ERRORS as e:
            logger.warning("Cache set failed", key=key, error=str(e))
            return False

    def delete(self, key: str) -> bool:
        try:
            self.redis.delete(self._make_key(key))
            return True
        except CACHE_ERRORS as e:
            logger.warning("Cache delete failed", key=key, error=str(e))
            return False

    def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching pattern (e.g. "posting_stats:*").

        Uses SCAN rather than KEYS so large keyspaces are not blocked.

        Returns:
            Number of keys deleted
        """
        try:
            full_pattern = self._make_key(pattern)
            deleted_count = 0
            cursor = 0
            while True:
                cursor, keys = self.redis.scan(cursor=cursor, match=full_pattern, count=100)
                if keys:
                    deleted_count += self.redis.delete(*keys)
                if cursor == 0:
                    break
            return deleted_count
        except CACHE_ERRORS as e:
            logger.warning("Cache delete pattern failed", pattern=pattern, error=str(e))
            return 0


def posting_stats_key(operator_id: str) -> str:
    return f"posting_stats:{operator_id}"


def invalidate_posting_stats(cache: Optional[Cache], operator_id: Optional[str] = None) -> None:
    """
    Drop cached posting statistics.

    With an operator id only that operator's entry goes; otherwise every
    operator's entry is dropped.
    """
    if cache is None:
        return
    if operator_id is None:
        cache.delete_pattern("posting_stats:*")
    else:
        cache.delete(posting_stats_key(operator_id))
