"""
Fare event sources.

Sources yield raw payloads one at a time; validation happens downstream so
that malformed payloads are counted by the job rather than by the source.
"""

import json
from typing import Any, Iterable, Iterator, TextIO, Union

import structlog
from kafka import KafkaConsumer

from hourly_tips.core.models.config import KafkaSourceConfig

logger = structlog.get_logger(__name__)


def decode_json(raw: Union[bytes, str]) -> Any:
    """Decode a JSON message; undecodable input is returned unchanged."""
    try:
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Failed to decode fare message", error=str(e))
        return raw


class KafkaFareSource:
    """Consume JSON fare events from a Kafka topic."""

    def __init__(self, config: KafkaSourceConfig):
        self.config = config
        self.running = False
        # No value deserializer: decoding errors are handled per message
        self.consumer = KafkaConsumer(
            config.topic,
            bootstrap_servers=config.bootstrap_servers,
            group_id=config.consumer_group,
            enable_auto_commit=True,
            auto_offset_reset=config.auto_offset_reset,
            consumer_timeout_ms=config.poll_timeout_ms,
        )
        logger.info("Kafka fare source initialized",
                    topic=config.topic,
                    consumer_group=config.consumer_group)

    def __iter__(self) -> Iterator[Any]:
        self.running = True
        # consumer_timeout_ms ends each pass over the consumer; keep polling until stopped
        while self.running:
            for message in self.consumer:
                yield decode_json(message.value)
                if not self.running:
                    break

    def stop(self):
        self.running = False

    def close(self):
        self.running = False
        self.consumer.close()
        logger.info("Kafka fare source closed")


def iter_json_lines(source: Union[str, TextIO, Iterable[str]]) -> Iterator[Any]:
    """
    Yield fare payloads from JSON lines.

    Args:
        source: File path, open text file, or any iterable of lines
    """
    if isinstance(source, str):
        with open(source, 'r', encoding='utf-8') as f:
            yield from iter_json_lines(f)
        return

    for line in source:
        line = line.strip()
        if line:
            yield decode_json(line)
