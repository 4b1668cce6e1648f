"""
Redis Cache Module for RetroShelf
Best-effort distributed cache in front of media resolution, with graceful degradation
"""

import os
import json
import logging
import threading
from typing import Any, Optional, Dict

import redis

from constants import MEDIA_CACHE_PREFIX
from exceptions import CacheUnavailable

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def _resolve_redis_url() -> str:
    url = os.environ.get("REDIS_URL")
    if url:
        return url
    try:
        from settings import load_settings
        return load_settings().get("cache", {}).get("redis_url") or DEFAULT_REDIS_URL
    except Exception as e:
        logger.warning(f"Could not read cache settings: {e}")
        return DEFAULT_REDIS_URL


class DistributedCache:
    """
    Thin wrapper around a Redis client.

    Values are JSON documents stored with a TTL. Every Redis failure is logged
    at warning level and turned into a miss or a no-op; callers never see an
    exception from this class.
    """

    def __init__(self, redis_url: Optional[str] = None, client=None):
        self.redis_url = redis_url or _resolve_redis_url()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
        }
        self._stats_lock = threading.Lock()

        if client is None:
            try:
                client = redis.from_url(self.redis_url, decode_responses=True)
            except Exception as e:
                logger.warning(f"Redis cache initialization failed: {e}. Cache will be disabled.")
                client = None

        self.client = client
        if self.client is not None:
            try:
                self.client.ping()
                logger.info(f"Redis cache initialized at {self.redis_url}")
            except Exception as e:
                logger.warning(f"Redis cache initialized but ping failed: {e}. Cache will be disabled.")
                self.client = None

    def _require_client(self):
        if self.client is None:
            raise CacheUnavailable("Redis not available")
        return self.client

    def _count(self, stat: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[stat] += amount

    def is_enabled(self) -> bool:
        """Check if Redis cache is enabled and available"""
        return self.client is not None

    def get(self, key: str) -> Optional[Dict]:
        """
        Get a JSON document from cache

        Returns:
            Decoded value, or None when absent, undecodable or Redis is down
        """
        try:
            value = self._require_client().get(key)
        except CacheUnavailable:
            return None
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

        if not value:
            self._count("misses")
            logger.debug(f"Cache MISS: {key}")
            return None

        try:
            decoded = json.loads(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache value for {key} is not valid JSON: {e}")
            self._count("misses")
            return None

        self._count("hits")
        logger.debug(f"Cache HIT: {key}")
        return decoded

    def set(self, key: str, value: Any, ttl: int) -> bool:
        """
        Set a value in cache with TTL

        Returns:
            True if set successfully, False otherwise
        """
        try:
            client = self._require_client()
            payload = value if isinstance(value, str) else json.dumps(value)
            client.setex(key, ttl, payload)
        except CacheUnavailable:
            return False
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False

        self._count("sets")
        logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
        return True

    def delete(self, key: str) -> bool:
        try:
            result = self._require_client().delete(key)
        except CacheUnavailable:
            return False
        except Exception as e:
            logger.warning(f"Cache delete error for {key}: {e}")
            return False

        if result > 0:
            self._count("deletes")
            logger.debug(f"Cache DELETE: {key}")
        return result > 0

    def delete_pattern(self, pattern: str) -> int:
        """
        Delete multiple keys matching a pattern

        Args:
            pattern: Redis key pattern (e.g., "metadata:*")

        Returns:
            Number of keys deleted
        """
        try:
            client = self._require_client()
            keys = list(client.scan_iter(match=pattern))
            if not keys:
                return 0
            count = client.delete(*keys)
        except CacheUnavailable:
            return 0
        except Exception as e:
            logger.warning(f"Cache delete pattern error for {pattern}: {e}")
            return 0

        self._count("deletes", count)
        logger.info(f"Cache DELETE: {pattern} ({count} keys)")
        return count

    def get_pattern(self, pattern: str) -> Dict[str, Any]:
        """Decoded values of every key matching `pattern`; undecodable values are skipped"""
        values = {}
        try:
            client = self._require_client()
            for key in client.scan_iter(match=pattern):
                raw = client.get(key)
                if not raw:
                    continue
                try:
                    values[key] = json.loads(raw)
                except (TypeError, ValueError):
                    logger.warning(f"Cache value for {key} is not valid JSON")
        except CacheUnavailable:
            return {}
        except Exception as e:
            logger.warning(f"Cache get pattern error for {pattern}: {e}")
            return {}
        return values

    def invalidate_media_cache(self, platform: Optional[str] = None) -> int:
        """
        Drop cached media bundles, for every platform or for one.

        Returns:
            Number of keys deleted
        """
        pattern = media_cache_key(platform, "*") if platform else f"{MEDIA_CACHE_PREFIX}:*"
        count = self.delete_pattern(pattern)
        if count > 0:
            logger.info(f"Invalidated {count} media cache entries")
        return count

    def stats(self) -> Dict:
        """Get cache statistics (hits, misses, sets, deletes)"""
        if self.client is None:
            return {"status": "disabled"}
        with self._stats_lock:
            return dict(self._stats)

    def reset_stats(self) -> None:
        with self._stats_lock:
            for stat in self._stats:
                self._stats[stat] = 0

    def info(self) -> Dict:
        """
        Get detailed cache information

        Returns:
            Dictionary with cache status, stats, and key count
        """
        if self.client is None:
            return {"status": "disabled", "error": "Redis not available"}

        try:
            key_count = sum(1 for _ in self.client.scan_iter())
            return {
                "status": "enabled",
                "keys": key_count,
                "stats": self.stats(),
                "redis_url": self.redis_url,
            }
        except Exception as e:
            logger.warning(f"Cache info error: {e}")
            return {"status": "error", "error": str(e)}


def media_cache_key(platform: str, title: str) -> str:
    return f"{MEDIA_CACHE_PREFIX}:{platform}:{title}"


def invalidate_media_cache(platform: Optional[str] = None) -> int:
    return get_distributed_cache().invalidate_media_cache(platform)


_distributed_cache = None
_instance_lock = threading.Lock()


def get_distributed_cache() -> DistributedCache:
    """Shared cache instance, created on first use."""
    global _distributed_cache
    if _distributed_cache is None:
        with _instance_lock:
            if _distributed_cache is None:
                _distributed_cache = DistributedCache()
    return _distributed_cache


def set_distributed_cache(cache: Optional[DistributedCache]) -> None:
    global _distributed_cache
    with _instance_lock:
        _distributed_cache = cache
