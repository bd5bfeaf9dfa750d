"""
Caching layer for service rates.
Uses Redis for distributed caching when REDIS_URL is set, with an
in-memory cache in front of it.
"""

import time
from typing import Any, Dict, Optional
import logging

import redis

from ridefare.models import ServiceRate, ServiceType

logger = logging.getLogger(__name__)


class PricingCache:
    """
    Multi-level caching strategy for service rates:
    1. In-memory cache (process level)
    2. Redis cache (shared across processes)
    3. Database (source of truth)
    """

    def __init__(self, redis_url: Optional[str] = None, ttl: int = 300):
        """
        Initialize cache with optional Redis connection.

        Args:
            redis_url: Redis connection URL (e.g., redis://localhost:6379)
            ttl: Time to live in seconds (default 5 minutes)
        """
        self.ttl = ttl
        self.redis_client = None

        # In-memory cache for this process
        self._memory_cache: Dict[str, Any] = {}
        self._cache_timestamps: Dict[str, float] = {}

        if redis_url:
            try:
                self.redis_client = redis.from_url(redis_url)
                self.redis_client.ping()
                logger.info("Redis pricing cache initialized")
            except redis.RedisError as e:
                logger.warning("Redis connection failed: %s. Using in-memory cache only.", e)
                self.redis_client = None

    @staticmethod
    def _make_key(service_type) -> str:
        """Generate cache key for a service."""
        return f"pricing:{ServiceType(service_type).value}"

    def _is_memory_cache_valid(self, key: str) -> bool:
        """Check if in-memory cache entry is still valid."""
        if key not in self._cache_timestamps:
            return False
        return (time.monotonic() - self._cache_timestamps[key]) < self.ttl

    def _remember(self, key: str, rate: ServiceRate):
        self._memory_cache[key] = rate
        self._cache_timestamps[key] = time.monotonic()

    def get_rate_cached(self, service_type) -> Optional[ServiceRate]:
        """
        Get a service rate from the cache levels.

        Cache lookup order:
        1. In-memory cache
        2. Redis cache
        Returns None on a miss.
        """
        key = self._make_key(service_type)

        if key in self._memory_cache and self._is_memory_cache_valid(key):
            return self._memory_cache[key]

        if self.redis_client:
            try:
                cached_value = self.redis_client.get(key)
                if cached_value:
                    rate = ServiceRate.model_validate_json(cached_value)
                    self._remember(key, rate)
                    return rate
            except redis.RedisError as e:
                logger.warning("Redis get error: %s", e)

        return None

    def set_rate_cache(self, service_type, rate: ServiceRate):
        """Store a service rate in all cache levels."""
        key = self._make_key(service_type)
        self._remember(key, rate)

        if self.redis_client:
            try:
                self.redis_client.setex(key, self.ttl, rate.model_dump_json())
            except redis.RedisError as e:
                logger.warning("Redis set error: %s", e)

    def invalidate_cache(self, service_type=None):
        """
        Invalidate cache entries.
        If a service is given, invalidate only its entry.
        Otherwise, invalidate all entries.
        """
        if service_type is not None:
            keys = [self._make_key(service_type)]
        else:
            keys = [self._make_key(s) for s in ServiceType]

        for key in keys:
            self._memory_cache.pop(key, None)
            self._cache_timestamps.pop(key, None)

        if self.redis_client:
            try:
                self.redis_client.delete(*keys)
            except redis.RedisError as e:
                logger.warning("Redis delete error: %s", e)

    def bulk_load_rates(self, rates: Dict[ServiceType, ServiceRate]):
        """
        Bulk load service rates into cache.
        Useful for warming up cache on startup.
        """
        pipeline = self.redis_client.pipeline() if self.redis_client else None

        for service_type, rate in rates.items():
            key = self._make_key(service_type)
            self._remember(key, rate)
            if pipeline:
                pipeline.setex(key, self.ttl, rate.model_dump_json())

        if pipeline:
            try:
                pipeline.execute()
                logger.info("Bulk loaded %d service rates into cache", len(rates))
            except redis.RedisError as e:
                logger.warning("Redis bulk load error: %s", e)


# Global cache instance (singleton pattern)
_pricing_cache: Optional[PricingCache] = None


def get_pricing_cache() -> PricingCache:
    """Get singleton pricing cache instance."""
    global _pricing_cache
    if _pricing_cache is None:
        from ridefare.config import settings

        _pricing_cache = PricingCache(
            redis_url=settings.REDIS_URL or None, ttl=settings.PRICING_CACHE_TTL
        )

        # Warm up cache on first access
        try:
            from ridefare.database import get_db_manager

            _pricing_cache.bulk_load_rates(get_db_manager().get_all_service_rates())
        except Exception as e:
            logger.warning("Pricing cache warmup failed: %s", e)

    return _pricing_cache


def get_rate_with_cache(service_type) -> Optional[ServiceRate]:
    """
    Get a service rate using a cache-first strategy.
    Returns None when the database holds no rate for the service.
    """
    cache = get_pricing_cache()

    rate = cache.get_rate_cached(service_type)
    if rate is not None:
        return rate

    # Cache miss - fetch from database
    from ridefare.database import get_db_manager

    rate = get_db_manager().get_service_rate(service_type)
    if rate is not None:
        cache.set_rate_cache(service_type, rate)
    return rate
