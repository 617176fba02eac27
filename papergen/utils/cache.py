"""
Redis cache utility for extraction results
"""
import redis
import json
import logging
import hashlib
from typing import Optional, Any

logger = logging.getLogger(__name__)


class CacheService:
    """
    Redis-based cache for structural extraction results

    Connection failures disable caching instead of failing requests.
    """

    def __init__(self, redis_url: str, default_ttl: int = 3600, enabled: bool = True):
        self.default_ttl = default_ttl
        self.redis_client = None
        if not enabled:
            logger.info("Caching disabled by configuration")
            return
        try:
            self.redis_client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5
            )
            # Test connection
            self.redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning(f"Redis connection failed: {str(e)}. Caching disabled.")
            self.redis_client = None

    @staticmethod
    def generate_extraction_key(mode: str, text: str) -> str:
        """
        Deterministic cache key for an extraction request

        Same mode + same text → same key
        """
        digest = hashlib.sha256(f"{mode}|{text}".encode("utf-8")).hexdigest()
        return f"extract:{mode}:{digest}"

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache

        Args:
            key: Cache key

        Returns:
            Cached value or None
        """
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(key)
            if value:
                logger.info(f"Cache hit: {key}")
                return json.loads(value)
            logger.info(f"Cache miss: {key}")
            return None
        except Exception as e:
            logger.error(f"Cache get error: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: int = None) -> bool:
        """Store a JSON-serializable value; ttl defaults to the configured extraction TTL"""
        if not self.redis_client:
            return False

        try:
            ttl = ttl or self.default_ttl
            self.redis_client.setex(key, ttl, json.dumps(value))
            logger.info(f"Cache set: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"Cache set error: {str(e)}")
            return False
