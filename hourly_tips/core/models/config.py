"""
Configuration models for the hourly tips job.

Centralized configuration for windowing, the Kafka source, the Redis sink,
logging and monitoring. Values can be overridden from the environment.
"""

import os
from datetime import timedelta
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

DEFAULT_WINDOW_SIZE = timedelta(hours=1)


class WindowConfig(BaseModel):
    """Tumbling window settings shared by both aggregation stages."""

    size: timedelta = Field(default=DEFAULT_WINDOW_SIZE, description="Tumbling window size")
    max_tip_sum: Decimal = Field(
        default=Decimal("1e15"),
        gt=0,
        description="Largest representable per-driver tip sum before overflow is raised",
    )

    @field_validator('size')
    @classmethod
    def _check_size(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("window size must be positive")
        if value % timedelta(milliseconds=1):
            raise ValueError("window size must be a whole number of milliseconds")
        return value

    @property
    def size_ms(self) -> int:
        return self.size // timedelta(milliseconds=1)


class KafkaSourceConfig(BaseModel):
    """Kafka source configuration."""

    bootstrap_servers: str = Field(default="localhost:9092")
    topic: str = Field(default="taxi.fares")
    consumer_group: str = Field(default="hourly-tips")
    auto_offset_reset: str = Field(default="earliest")
    poll_timeout_ms: int = Field(default=1000)


class RedisSinkConfig(BaseModel):
    """Redis sink configuration."""

    host: str = Field(default="localhost")
    port: int = Field(default=6379)
    db: int = Field(default=0)
    key_prefix: str = Field(default="hourly_tips")
    ttl_seconds: int = Field(default=7 * 24 * 3600, description="TTL of written records")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="console", description="Log format: json or console")


class MonitoringConfig(BaseModel):
    """Monitoring configuration."""

    enable_prometheus: bool = Field(default=False, description="Start the metrics HTTP server")
    metrics_port: int = Field(default=8000)


class HourlyTipsConfig(BaseModel):
    """Complete job configuration."""

    window: WindowConfig = Field(default_factory=WindowConfig)
    kafka: KafkaSourceConfig = Field(default_factory=KafkaSourceConfig)
    redis: RedisSinkConfig = Field(default_factory=RedisSinkConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    @classmethod
    def from_env(cls) -> "HourlyTipsConfig":
        """Load configuration from environment variables."""
        config = cls()

        # Window configuration
        if os.getenv("HOURLY_TIPS_WINDOW_MINUTES"):
            config.window = WindowConfig(
                size=timedelta(minutes=float(os.getenv("HOURLY_TIPS_WINDOW_MINUTES"))),
                max_tip_sum=config.window.max_tip_sum,
            )
        if os.getenv("HOURLY_TIPS_MAX_TIP_SUM"):
            config.window = WindowConfig(
                size=config.window.size,
                max_tip_sum=Decimal(os.getenv("HOURLY_TIPS_MAX_TIP_SUM")),
            )

        # Kafka configuration
        if os.getenv("KAFKA_BOOTSTRAP_SERVERS"):
            config.kafka.bootstrap_servers = os.getenv("KAFKA_BOOTSTRAP_SERVERS")
        if os.getenv("HOURLY_TIPS_TOPIC"):
            config.kafka.topic = os.getenv("HOURLY_TIPS_TOPIC")
        if os.getenv("HOURLY_TIPS_CONSUMER_GROUP"):
            config.kafka.consumer_group = os.getenv("HOURLY_TIPS_CONSUMER_GROUP")

        # Redis configuration
        if os.getenv("REDIS_HOST"):
            config.redis.host = os.getenv("REDIS_HOST")
        if os.getenv("REDIS_PORT"):
            config.redis.port = int(os.getenv("REDIS_PORT"))

        # Logging and monitoring
        if os.getenv("LOG_LEVEL"):
            config.logging.level = os.getenv("LOG_LEVEL")
        if os.getenv("LOG_FORMAT"):
            config.logging.format = os.getenv("LOG_FORMAT")
        if os.getenv("METRICS_PORT"):
            config.monitoring.enable_prometheus = True
            config.monitoring.metrics_port = int(os.getenv("METRICS_PORT"))

        return config
