"""
Preference Cache
TTL memoization of user preferences, optionally backed by Redis.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional, Tuple

from ..errors import PreferenceLookupError
from ..personalization.preferences import PreferenceStore, UserPreferences
from .redis_cache import RedisCache

logger = logging.getLogger(__name__)

_NO_PREFERENCES = object()


class PreferenceCacheStatistics:
    """Track preference cache hits and misses."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self.bypasses = 0
        self.errors = 0
        self.evictions = 0
        self._lock = threading.Lock()

    def record(self, name: str, count: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + count)

    def get_hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "bypasses": self.bypasses,
            "errors": self.errors,
            "evictions": self.evictions,
            "hit_rate": self.get_hit_rate(),
        }


class PreferenceCache:
    """
    Best-effort cache in front of a PreferenceStore.

    - Entries expire after ttl_seconds (0 disables caching)
    - Expired entries are swept on every miss; past max_entries the least
      recently used entry is evicted
    - Lookups that carry a session id bypass the cache and are not stored
    - Concurrent reads are safe; a racing miss may load the same user twice
    """

    KEY_PREFIX = "search:prefs:"

    def __init__(
        self,
        store: PreferenceStore,
        ttl_seconds: int = 300,
        max_entries: int = 10000,
        redis_cache: Optional[RedisCache] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize preference cache.

        Args:
            store: Source of truth for preferences
            ttl_seconds: Entry lifetime in seconds
            max_entries: Maximum number of users held in memory
            redis_cache: Optional shared cache tier
            clock: Monotonic clock (seconds)
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")

        self.store = store
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.redis_cache = redis_cache
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[object, float]]" = OrderedDict()
        self._lock = threading.Lock()
        self.stats = PreferenceCacheStatistics()

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    def get(self, user_id: str, session_id: Optional[str] = None) -> Optional[UserPreferences]:
        """
        Get preferences for a user.

        Args:
            user_id: User ID
            session_id: Active session; forces a fresh read from the store

        Returns:
            UserPreferences or None if the user has none

        Raises:
            PreferenceLookupError: If the store fails
        """
        if session_id is not None or self.ttl_seconds <= 0:
            self.stats.record("bypasses")
            return self._load(user_id)

        now = self._clock()
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is not None and entry[1] > now:
                self._entries.move_to_end(user_id)
            else:
                entry = None
                self._sweep_expired(now)
        if entry is not None:
            self.stats.record("hits")
            return None if entry[0] is _NO_PREFERENCES else entry[0]

        if self.redis_cache is not None:
            shared = self.redis_cache.get(self._key(user_id))
            if isinstance(shared, UserPreferences):
                self.stats.record("hits")
                self._remember(user_id, shared, now)
                return shared

        self.stats.record("misses")
        preferences = self._load(user_id)
        self._remember(user_id, preferences, now)
        if preferences is not None and self.redis_cache is not None:
            self.redis_cache.set(self._key(user_id), preferences, ttl=self.ttl_seconds)
        return preferences

    def _load(self, user_id: str) -> Optional[UserPreferences]:
        try:
            return self.store.get_preferences(user_id)
        except Exception as e:
            self.stats.record("errors")
            raise PreferenceLookupError(
                f"Failed to load preferences for user {user_id}: {e}",
                details={"user_id": user_id},
            ) from e

    def _remember(self, user_id: str, preferences: Optional[UserPreferences], now: float) -> None:
        value = _NO_PREFERENCES if preferences is None else preferences
        with self._lock:
            self._entries[user_id] = (value, now + self.ttl_seconds)
            self._entries.move_to_end(user_id)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.stats.record("evictions")

    def _sweep_expired(self, now: float) -> None:
        # Caller holds self._lock
        expired = [user_id for user_id, (_, expires_at) in self._entries.items() if expires_at <= now]
        for user_id in expired:
            del self._entries[user_id]
        if expired:
            self.stats.record("evictions", len(expired))

    def __len__(self) -> int:
        return len(self._entries)

    def invalidate(self, user_id: str) -> None:
        """Drop a user's cached preferences from every tier."""
        with self._lock:
            self._entries.pop(user_id, None)
        if self.redis_cache is not None:
            self.redis_cache.delete(self._key(user_id))

    def clear(self) -> None:
        """Drop all cached preferences."""
        with self._lock:
            self._entries.clear()
        if self.redis_cache is not None:
            deleted = self.redis_cache.delete_pattern(f"{self.KEY_PREFIX}*")
            logger.info(f"Cleared {deleted} shared preference entries")
