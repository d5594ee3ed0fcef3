"""
Redis utility module for centralized Redis configuration and connection logic.

Provides Redis connection management with production validation.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from fantasy.config import Config

logger = logging.getLogger(__name__)


class RedisUtils:
    """Centralized Redis configuration and connection utilities."""

    @staticmethod
    def get_secure_redis_url() -> Optional[str]:
        """Get the Redis URL, refusing insecure URLs outside debug mode."""
        if Config.REDIS_URL:
            if RedisUtils._validate_redis_security(Config.REDIS_URL):
                return Config.REDIS_URL
            logger.error("REDIS_URL contains an insecure configuration")
            return None

        if not Config.DEBUG:
            logger.info("REDIS_URL not set; Redis caching disabled")
            return None

        logger.warning("Development mode: using insecure localhost Redis. Do not use in production!")
        return 'redis://localhost:6379'

    @staticmethod
    def _validate_redis_security(redis_url: str) -> bool:
        """Validate that a Redis URL meets the security requirements."""
        if not redis_url:
            return False

        if Config.DEBUG:
            if redis_url.startswith(('redis://localhost', 'redis://127.0.0.1', 'rediss://')):
                return True
            logger.warning(f"Potentially insecure Redis URL in development: {redis_url}")
            return True

        # Production requires TLS and credentials
        if not redis_url.startswith('rediss://'):
            logger.error("Production Redis must use rediss:// (TLS) protocol")
            return False
        if '@' not in redis_url:
            logger.error("Production Redis must include authentication credentials")
            return False
        return True

    @staticmethod
    async def create_redis_client() -> Optional[redis.Redis]:
        """Create a Redis client, or None when Redis is not configured or unreachable."""
        redis_url = RedisUtils.get_secure_redis_url()
        if not redis_url:
            return None

        try:
            client = redis.from_url(redis_url)
            # Test connection
            await client.ping()
            logger.info("Successfully connected to Redis")
            return client
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            return None
