"""
Redis Cache Client
Thread-safe Redis client with connection pooling, shared across search workers.
"""

import logging
import pickle
import threading
from typing import Any, Optional

import redis
from redis.connection import ConnectionPool

from ...config.settings import SearchSettings, get_settings

logger = logging.getLogger(__name__)


class RedisCacheError(Exception):
    """Exception raised for Redis cache errors."""

    pass


class RedisCache:
    """
    Redis cache client with connection pooling.

    Values are pickled. Redis errors are logged and reported as misses or
    failed writes so callers can treat the cache as best-effort.
    """

    def __init__(
        self,
        settings: Optional[SearchSettings] = None,
        client: Optional[redis.Redis] = None,
    ):
        """
        Initialize Redis cache client.

        Args:
            settings: Search settings with Redis connection details
            client: Pre-built client (skips pool creation)
        """
        self.settings = settings or get_settings()
        self.client: Optional[redis.Redis] = client
        self.pool: Optional[ConnectionPool] = None
        self._lock = threading.Lock()

        if client is None:
            self.pool = ConnectionPool(
                host=self.settings.redis_host,
                port=self.settings.redis_port,
                db=self.settings.redis_db,
                password=self.settings.redis_password,
                decode_responses=False,  # Values are pickled bytes
                max_connections=20,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
            logger.info(
                f"Redis cache initialized: {self.settings.redis_host}:"
                f"{self.settings.redis_port} (db={self.settings.redis_db})"
            )

    def _get_client(self) -> redis.Redis:
        """
        Get Redis client (lazy initialization).

        Raises:
            RedisCacheError: If connection fails
        """
        if self.client is None:
            with self._lock:
                if self.client is None:
                    try:
                        client = redis.Redis(connection_pool=self.pool)
                        client.ping()
                        self.client = client
                        logger.info("Redis connection established")
                    except redis.ConnectionError as e:
                        raise RedisCacheError(f"Failed to connect to Redis: {e}") from e

        return self.client

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found
        """
        try:
            data = self._get_client().get(key)
            if data is None:
                return None
            return pickle.loads(data)

        except (redis.RedisError, RedisCacheError) as e:
            logger.error(f"Redis GET error for key '{key}': {e}")
            return None
        except (pickle.UnpicklingError, EOFError, AttributeError, TypeError) as e:
            logger.error(f"Error deserializing cached data for key '{key}': {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache (will be pickled)
            ttl: Time-to-live in seconds (None = no expiration)

        Returns:
            True if successful, False otherwise
        """
        try:
            data = pickle.dumps(value)
            client = self._get_client()
            if ttl:
                client.setex(key, ttl, data)
            else:
                client.set(key, data)
            return True

        except (redis.RedisError, RedisCacheError) as e:
            logger.error(f"Redis SET error for key '{key}': {e}")
            return False
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            logger.error(f"Error serializing data for key '{key}': {e}")
            return False

    def delete(self, key: str) -> bool:
        """
        Delete key from cache.

        Returns:
            True if key was deleted, False otherwise
        """
        try:
            return self._get_client().delete(key) > 0

        except (redis.RedisError, RedisCacheError) as e:
            logger.error(f"Redis DELETE error for key '{key}': {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Key pattern (e.g., "prefs:*")

        Returns:
            Number of keys deleted
        """
        try:
            client = self._get_client()
            keys = list(client.scan_iter(match=pattern))
            if not keys:
                return 0
            return client.delete(*keys)

        except (redis.RedisError, RedisCacheError) as e:
            logger.error(f"Redis DELETE PATTERN error for pattern '{pattern}': {e}")
            return 0

    def ping(self) -> bool:
        """
        Test Redis connection.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            return bool(self._get_client().ping())

        except (redis.RedisError, RedisCacheError) as e:
            logger.error(f"Redis PING error: {e}")
            return False


# Global instance accessor
_cache_instance: Optional[RedisCache] = None
_instance_lock = threading.Lock()


def get_redis_cache(settings: Optional[SearchSettings] = None) -> RedisCache:
    """Get global Redis cache instance."""
    global _cache_instance
    if _cache_instance is None:
        with _instance_lock:
            if _cache_instance is None:
                _cache_instance = RedisCache(settings=settings)
    return _cache_instance
