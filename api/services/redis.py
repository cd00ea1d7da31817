# SPDX-License-Identifier: Apache-2.0

"""
Redis service for the token blocklist and small read caches.

Uses the Upstash HTTP client. When Redis is not configured every operation
degrades to a no-op: tokens are not blocked and nothing is cached.
"""

import os
import json
import time
from typing import Optional, Dict, Any, Union, List
from upstash_redis import Redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

BLOCKLIST_PREFIX = "jwt:blocked:"
STATUS_SUMMARY_KEY = "luminarias:status:summary"


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """Redis service with Upstash HTTP client."""

    def __init__(self, redis_url: Optional[str] = None, redis_token: Optional[str] = None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Upstash Redis HTTP URL
            redis_token: Upstash Redis authentication token
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL")
        self.redis_token = redis_token or os.getenv("REDIS_TOKEN")
        self.client = None

        if not self.redis_url:
            logger.warning("No REDIS_URL configured, Redis operations will be disabled")
            return

        try:
            self.client = Redis(url=self.redis_url, token=self.redis_token)
            self._test_connection()
            logger.info("Redis service initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        result = self.client.ping()
        if result != "PONG":
            raise RedisConnectionError("Redis ping failed")

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def set_with_ttl(self, key: str, value: Union[str, Dict, List], ttl_seconds: int) -> bool:
        """
        Set a key with TTL; dicts and lists are stored as JSON.

        Returns:
            True if successful, False otherwise
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.set_with_ttl") as span:
            span.set_attributes({
                "redis.operation": "set_with_ttl",
                "redis.key": key,
                "redis.ttl": ttl_seconds
            })

            try:
                if isinstance(value, (dict, list)):
                    value = json.dumps(value)

                result = self.client.setex(key, ttl_seconds, value)
                span.set_attribute("redis.result", "success")
                return result == "OK" or result is True

            except Exception as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis SET failed: {str(e)}")
                return False

    def get(self, key: str) -> Optional[str]:
        """Get value by key, or None on miss or error."""
        if not self.is_available():
            return None

        with tracer.start_as_current_span("redis.get") as span:
            span.set_attributes({
                "redis.operation": "get",
                "redis.key": key
            })

            try:
                result = self.client.get(key)
                span.set_attribute("redis.result", "hit" if result else "miss")
                return result

            except Exception as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis GET failed: {str(e)}")
                return None

    def get_json(self, key: str) -> Optional[Union[Dict, List]]:
        """Get and deserialize JSON value by key."""
        value = self.get(key)
        if value is None:
            return None

        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to deserialize JSON from Redis key {key}: {str(e)}")
            return None

    def delete(self, key: str) -> bool:
        """Delete a key."""
        if not self.is_available():
            return False

        try:
            return self.client.delete(key) > 0
        except Exception as e:
            logger.error(f"Redis DELETE failed: {str(e)}")
            return False

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        if not self.is_available():
            return False

        try:
            return self.client.exists(key) > 0
        except Exception as e:
            logger.error(f"Redis EXISTS failed: {str(e)}")
            return False

    # JWT Token Blocklist

    def is_token_blocked(self, token_id: str) -> bool:
        """Check if a JWT token is in the blocklist."""
        if not self.is_available():
            logger.warning("Redis unavailable for token blocklist check - allowing token")
            return False

        with tracer.start_as_current_span("redis.is_token_blocked") as span:
            span.set_attributes({
                "redis.operation": "is_token_blocked",
                "auth.token_id": token_id
            })

            result = self.exists(f"{BLOCKLIST_PREFIX}{token_id}")
            span.set_attribute("auth.token_blocked", result)
            return result

    def block_token(self, token_id: str, ttl_seconds: int) -> bool:
        """
        Add a JWT token to the blocklist.

        Args:
            token_id: Unique token identifier
            ttl_seconds: Time to live, matching the token expiration
        """
        if not self.is_available():
            logger.error("Redis unavailable - cannot block token")
            return False

        with tracer.start_as_current_span("redis.block_token") as span:
            span.set_attributes({
                "redis.operation": "block_token",
                "auth.token_id": token_id,
                "redis.ttl": ttl_seconds
            })

            result = self.set_with_ttl(f"{BLOCKLIST_PREFIX}{token_id}", "1", ttl_seconds)
            span.set_attribute("auth.token_block_result", "success" if result else "failed")

            if result:
                logger.info(f"Token blocked successfully: {token_id} (TTL: {ttl_seconds}s)")
            else:
                logger.error(f"Failed to block token: {token_id}")

            return result

    # Status summary cache

    def cache_status_summary(self, summary: Dict[str, int], ttl_seconds: int = 60) -> bool:
        """Cache luminaria counts per status."""
        return self.set_with_ttl(STATUS_SUMMARY_KEY, summary, ttl_seconds)

    def get_cached_status_summary(self) -> Optional[Dict[str, int]]:
        """Get cached luminaria counts per status."""
        return self.get_json(STATUS_SUMMARY_KEY)

    def invalidate_status_summary(self) -> bool:
        """Drop the cached counts after a status change."""
        return self.delete(STATUS_SUMMARY_KEY)

    # Health

    def health_check(self) -> Dict[str, Any]:
        """Round-trip a short-lived key and report latency."""
        if not self.is_available():
            return {
                "status": "unavailable",
                "message": "Redis client not initialized",
                "timestamp": time.time()
            }

        try:
            start_time = time.time()

            test_key = f"health:check:{int(start_time)}"
            self.client.setex(test_key, 10, "test")
            value = self.client.get(test_key)
            self.client.delete(test_key)

            response_time = (time.time() - start_time) * 1000

            if value == "test":
                return {
                    "status": "healthy",
                    "response_time_ms": round(response_time, 2),
                    "timestamp": time.time()
                }
            return {
                "status": "degraded",
                "message": "Redis operations not working correctly",
                "response_time_ms": round(response_time, 2),
                "timestamp": time.time()
            }

        except Exception as e:
            return {
                "status": "unhealthy",
                "message": str(e),
                "timestamp": time.time()
            }
