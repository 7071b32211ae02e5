"""Caching layer."""

from .preference_cache import PreferenceCache, PreferenceCacheStatistics
from .redis_cache import RedisCache, RedisCacheError, get_redis_cache

__all__ = [
    "PreferenceCache",
    "PreferenceCacheStatistics",
    "RedisCache",
    "RedisCacheError",
    "get_redis_cache",
]
