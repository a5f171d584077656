import redis
import json
from typing import Dict, Any, Optional
from app.core.config import get_settings
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class RedisClient:
    """Redis client wrapper for publishing ingested events over Pub/Sub."""

    def __init__(self):
        self._client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return settings.redis_enabled

    def _connect(self) -> redis.Redis:
        """Establish connection to Redis on first use."""
        if self._client is None:
            self._client = redis.Redis(
                host=settings.redis_host,
                port=settings.redis_port,
                db=settings.redis_db,
                decode_responses=True
            )
            self._client.ping()
            logger.info(f"Connected to Redis at {settings.redis_host}:{settings.redis_port}")
        return self._client

    def publish_event(self, event_data: Dict[str, Any]) -> int:
        """
        Publish event to Redis Pub/Sub channel.

        Args:
            event_data: Event data dictionary to publish

        Returns:
            Number of subscribers that received the message (0 when disabled)

        Raises:
            redis.RedisError: If the connection or publish fails
        """
        if not self.enabled:
            logger.debug("Redis publishing disabled, skipping event publish")
            return 0

        try:
            client = self._connect()
            num_subscribers = client.publish(
                settings.redis_channel_name,
                json.dumps(event_data, default=str)
            )
            logger.info(f"Published event to channel '{settings.redis_channel_name}': {event_data.get('eventType')} (subscribers: {num_subscribers})")
            return num_subscribers
        except Exception as e:
            logger.error(f"Failed to publish event: {e}")
            # Drop the client so the next publish reconnects
            self._client = None
            raise

    def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        if not self.enabled:
            return False
        try:
            return bool(self._connect().ping())
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            self._client = None
            return False

    def close(self):
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None
            logger.info("Redis connection closed")


# Global Redis client instance
redis_client = RedisClient()
