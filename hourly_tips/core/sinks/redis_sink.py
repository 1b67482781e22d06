"""
Redis sink for hourly maximum records.

Writes each HourlyMaxRecord as a hash keyed by window end and keeps a
pointer to the most recent winner.
"""

import json

import redis
import structlog

from hourly_tips.core.models.config import RedisSinkConfig
from hourly_tips.core.models.events import HourlyMaxRecord
from hourly_tips.core.utils.metrics import SINK_WRITES

logger = structlog.get_logger(__name__)


class RedisMaxSink:
    """Sink hourly winners to Redis."""

    def __init__(self, config: RedisSinkConfig):
        self.config = config
        self.redis_client = redis.Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            decode_responses=True
        )

    def record_key(self, window_end: int) -> str:
        return f"{self.config.key_prefix}:max:{window_end}"

    @property
    def latest_key(self) -> str:
        return f"{self.config.key_prefix}:max:latest"

    def write(self, record: HourlyMaxRecord) -> bool:
        """Write one record; failures are logged and reported, not raised."""
        try:
            serialized = {key: str(value) for key, value in record.to_dict().items()}
            key = self.record_key(record.window_end)

            self.redis_client.hset(key, mapping=serialized)
            self.redis_client.expire(key, self.config.ttl_seconds)
            self.redis_client.set(self.latest_key, json.dumps(serialized), ex=self.config.ttl_seconds)

            SINK_WRITES.labels(sink='redis', status='success').inc()
            logger.debug("Hourly max written", key=key)
            return True

        except redis.RedisError as e:
            SINK_WRITES.labels(sink='redis', status='error').inc()
            logger.error("Failed to write hourly max",
                         window_end=record.window_end,
                         error=str(e))
            return False

    def close(self):
        self.redis_client.close()
