import logging
import json
from typing import Any, Dict, Optional
import threading

from config.settings import settings

logger = logging.getLogger(__name__)

SUMMARY_CACHE_TYPE = "ai_summary"

class CacheManager:
    """
    Cache manager with Redis support
    Holds the most recently persisted AI summary of each deal
    """

    def __init__(self, redis_url: str = None, default_ttl: int = None, enabled: bool = None, redis_client=None):
        """
        Initialize cache manager

        Args:
            redis_url: Redis connection URL
            default_ttl: Default TTL in seconds
            enabled: Override settings.CACHE_ENABLED
            redis_client: Pre-built Redis client (skips connecting)
        """
        self.redis_url = redis_url or settings.REDIS_URL
        self.default_ttl = default_ttl or settings.CACHE_TTL
        self.redis_client = redis_client
        self.enabled = settings.CACHE_ENABLED if enabled is None else enabled

        # Statistics
        self.stats = {
            'hits': 0,
            'misses': 0,
            'sets': 0,
            'deletes': 0,
            'errors': 0
        }
        self.stats_lock = threading.Lock()

        if self.enabled and self.redis_client is None:
            self._connect_redis()

        logger.info(f"Cache manager initialized (enabled: {self.enabled})")

    def _connect_redis(self):
        """Connect to Redis"""
        try:
            import redis

            self.redis_client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5
            )

            # Test connection
            self.redis_client.ping()
            logger.info(f"Connected to Redis: {self.redis_url}")

        except Exception as e:
            logger.warning(f"Redis connection failed: {e}, caching disabled")
            self.enabled = False
            self.redis_client = None

    def _record(self, stat: str):
        with self.stats_lock:
            self.stats[stat] += 1

    def set(self, key: str, value: Any, ttl: int = None, cache_type: str = "general") -> bool:
        """
        Set a value in cache

        Args:
            key: Cache key
            value: JSON-serializable value to cache
            ttl: Time-to-live in seconds
            cache_type: Type of cache for key prefixing

        Returns:
            True if successful, False otherwise
        """

        if not self.enabled or not self.redis_client:
            return False

        cache_key = f"{cache_type}:{key}"
        try:
            ttl = ttl or self.default_ttl
            result = self.redis_client.setex(cache_key, ttl, json.dumps(value, default=str))

            if result:
                self._record('sets')
                logger.debug(f"Cached: {cache_key} (TTL: {ttl}s)")
                return True

            logger.warning(f"Failed to cache: {cache_key}")
            return False

        except Exception as e:
            logger.error(f"Cache set error: {e}")
            self._record('errors')
            return False

    def get(self, key: str, default: Any = None, cache_type: str = "general") -> Any:
        """
        Get a value from cache

        Returns:
            Cached value or default
        """

        if not self.enabled or not self.redis_client:
            return default

        cache_key = f"{cache_type}:{key}"
        try:
            cached_data = self.redis_client.get(cache_key)

            if cached_data is not None:
                self._record('hits')
                logger.debug(f"Cache hit: {cache_key}")
                return json.loads(cached_data)

            self._record('misses')
            logger.debug(f"Cache miss: {cache_key}")
            return default

        except Exception as e:
            logger.error(f"Cache get error: {e}")
            self._record('errors')
            return default

    def delete(self, key: str, cache_type: str = "general") -> bool:
        """Delete a key from cache"""

        if not self.enabled or not self.redis_client:
            return False

        cache_key = f"{cache_type}:{key}"
        try:
            if self.redis_client.delete(cache_key):
                self._record('deletes')
                logger.debug(f"Cache delete: {cache_key}")
                return True
            return False

        except Exception as e:
            logger.error(f"Cache delete error: {e}")
            self._record('errors')
            return False

    # =================== AI SUMMARIES ===================

    @staticmethod
    def _summary_key(tenant_id: str, deal_id: str) -> str:
        return f"{tenant_id}:{deal_id}"

    def cache_summary(self, tenant_id: str, deal_id: str, ai_summary: Dict[str, Any]) -> bool:
        """
        Cache a deal's persisted AI summary

        Args:
            tenant_id: Tenant owning the deal
            deal_id: Deal identifier
            ai_summary: JSON-ready summary document (camelCase keys)
        """
        return self.set(
            self._summary_key(tenant_id, deal_id), ai_summary,
            ttl=settings.SUMMARY_CACHE_TTL, cache_type=SUMMARY_CACHE_TYPE
        )

    def get_cached_summary(self, tenant_id: str, deal_id: str) -> Optional[Dict[str, Any]]:
        return self.get(self._summary_key(tenant_id, deal_id), cache_type=SUMMARY_CACHE_TYPE)

    def invalidate_summary(self, tenant_id: str, deal_id: str) -> bool:
        return self.delete(self._summary_key(tenant_id, deal_id), cache_type=SUMMARY_CACHE_TYPE)

    def health_check(self) -> Dict[str, Any]:
        """
        Perform health check

        Returns:
            Health check results
        """

        if not self.enabled:
            return {
                'status': 'disabled',
                'message': 'Caching is disabled'
            }

        if not self.redis_client:
            return {
                'status': 'unhealthy',
                'message': 'Redis client not available'
            }

        try:
            self.redis_client.ping()
            info = self.redis_client.info()

            return {
                'status': 'healthy',
                'redis_version': info.get('redis_version'),
                'used_memory': info.get('used_memory_human'),
                'connected_clients': info.get('connected_clients'),
                'uptime_seconds': info.get('uptime_in_seconds')
            }

        except Exception as e:
            return {
                'status': 'unhealthy',
                'error': str(e)
            }

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""

        with self.stats_lock:
            stats = self.stats.copy()

        total_requests = stats['hits'] + stats['misses']
        hit_rate = (stats['hits'] / total_requests * 100) if total_requests > 0 else 0

        return {
            'enabled': self.enabled,
            **stats,
            'hit_rate_percent': round(hit_rate, 2),
            'total_requests': total_requests
        }

    def close(self):
        """Close Redis connection"""
        if self.redis_client:
            try:
                self.redis_client.close()
                logger.info("Redis connection closed")
            except Exception as e:
                logger.error(f"Error closing Redis connection: {e}")

# Global cache manager instance
_cache_manager = None

def get_cache_manager() -> CacheManager:
    """Get global cache manager instance"""
    global _cache_manager
    if _cache_manager is None:
        _cache_manager = CacheManager()
    return _cache_manager
