"""Cache TTL (Time To Live) configuration.

All TTL values are in seconds and can be overridden via environment variables.
"""
import os

from rcm.utils.logger import get_logger

logger = get_logger(__name__)

# Default TTL values (in seconds)
DEFAULT_TTL = {
    "posting_stats": 300,  # 5 minutes
    "claim": 1800,  # 30 minutes
    "era_queue": 60,  # 1 minute
}

# Environment variable mappings
ENV_VAR_MAP = {
    "posting_stats": "CACHE_TTL_POSTING_STATS",
    "claim": "CACHE_TTL_CLAIM",
    "era_queue": "CACHE_TTL_ERA_QUEUE",
}


def get_ttl(cache_type: str) -> int:
    """
    Get TTL value for a cache type.

    Args:
        cache_type: Type of cache (e.g., "posting_stats", "claim")

    Returns:
        TTL value in seconds (1 hour for unknown types)
    """
    env_var = ENV_VAR_MAP.get(cache_type)
    if env_var:
        env_value = os.getenv(env_var)
        if env_value:
            try:
                return int(env_value)
            except ValueError:
                logger.warning("Ignoring non-integer cache TTL", env_var=env_var, value=env_value)

    return DEFAULT_TTL.get(cache_type, 3600)


def get_posting_stats_ttl() -> int:
    """Get TTL for the per-operator posting statistics cache."""
    return get_ttl("posting_stats")
