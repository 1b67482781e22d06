#!/usr/bin/env python3
"""
Hourly Tips Stream Processor

Computes, per hour and per driver, the total tips collected, then emits the
driver with the highest hourly total for each hour.

Features:
- Event-time tumbling windows driven by a monotonous watermark
- Per-driver accumulation and a global per-window maximum
- Kafka or JSON-lines input, stdout or Redis output
- Metrics and structured logging

Known limitation: output only advances with event time. A source that stops
advancing timestamps holds its last windows open until end of input.
"""

import os
import sys
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

# Add project root to path (go up two levels from hourly_tips/simple/ to project root)
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

import click
import structlog
from prometheus_client import start_http_server

from hourly_tips.core.errors import AccumulatorOverflowError, MalformedFareError
from hourly_tips.core.models.config import HourlyTipsConfig, WindowConfig
from hourly_tips.core.models.events import FareEvent, HourlyMaxRecord
from hourly_tips.core.pipeline import HourlyTipsPipeline
from hourly_tips.core.sinks.print_sink import PrintSink
from hourly_tips.core.sinks.redis_sink import RedisMaxSink
from hourly_tips.core.sources.kafka_source import KafkaFareSource, iter_json_lines
from hourly_tips.core.utils.log_config import configure_logging
from hourly_tips.core.utils.metrics import FARES_PROCESSED, PROCESSING_DURATION

logger = structlog.get_logger(__name__)


@dataclass
class JobResult:
    """Outcome counts of one job run."""
    fares_received: int = 0
    fares_accepted: int = 0
    fares_malformed: int = 0
    fares_late: int = 0
    records_written: int = 0
    sink_errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class HourlyTipsJob:
    """Runs the hourly tips pipeline from a source into a sink."""

    def __init__(self, source: Iterable[Any], sink, config: Optional[HourlyTipsConfig] = None):
        self.source = source
        self.sink = sink
        self.config = config or HourlyTipsConfig()
        self.pipeline = HourlyTipsPipeline(self.config.window)
        self.result = JobResult()
        self.running = False

    def execute(self) -> JobResult:
        """Consume the source to exhaustion (or until stopped) and flush open windows."""
        self.running = True
        if self.config.monitoring.enable_prometheus:
            start_http_server(self.config.monitoring.metrics_port)
            logger.info("Metrics server started", port=self.config.monitoring.metrics_port)

        logger.info("Starting hourly tips job", window_size_ms=self.pipeline.window_size_ms)
        try:
            for payload in self.source:
                if not self.running:
                    break
                self.process_payload(payload)
            self._deliver(self.pipeline.finish())
        except KeyboardInterrupt:
            logger.info("Received interrupt signal")
        except AccumulatorOverflowError as e:
            logger.error("Tip accumulator overflow, stopping job",
                         driver_id=e.driver_id,
                         window_end=e.window_end)
            raise
        finally:
            self.running = False
            self._close()

        logger.info("Hourly tips job finished", **self.result.to_dict())
        return self.result

    def process_payload(self, payload: Any) -> List[HourlyMaxRecord]:
        """Validate and process a single raw payload."""
        self.result.fares_received += 1
        with PROCESSING_DURATION.time():
            try:
                event = FareEvent.from_payload(payload)
            except MalformedFareError as e:
                self.result.fares_malformed += 1
                FARES_PROCESSED.labels(status='malformed').inc()
                logger.warning("Malformed fare rejected", error=str(e))
                return []

            late_before = self.pipeline.stats.late_dropped
            results = self.pipeline.process(event)
            if self.pipeline.stats.late_dropped > late_before:
                self.result.fares_late += 1
                FARES_PROCESSED.labels(status='late').inc()
            else:
                self.result.fares_accepted += 1
                FARES_PROCESSED.labels(status='accepted').inc()

            self._deliver(results)
            return results

    def _deliver(self, records: List[HourlyMaxRecord]) -> None:
        for record in records:
            if self.sink.write(record):
                self.result.records_written += 1
            else:
                self.result.sink_errors += 1
                FARES_PROCESSED.labels(status='sink_error').inc()

    def stop(self):
        """Stop consuming; open windows are still flushed to the sink."""
        self.running = False
        stop_source = getattr(self.source, 'stop', None)
        if stop_source is not None:
            stop_source()
        logger.info("Hourly tips job stopping")

    def _close(self):
        for closable in (self.source, self.sink):
            close = getattr(closable, 'close', None)
            if close is not None:
                close()


@click.command()
@click.option('--input-file', type=click.Path(exists=True, dir_okay=False),
              help='Read fares from a JSON-lines file instead of Kafka')
@click.option('--kafka-servers', default=None, help='Kafka bootstrap servers')
@click.option('--topic', default=None, help='Kafka topic with fare events')
@click.option('--consumer-group', default=None, help='Kafka consumer group')
@click.option('--sink', 'sink_type', type=click.Choice(['print', 'redis']), default='print',
              help='Where to write hourly winners')
@click.option('--redis-host', default=None, help='Redis host')
@click.option('--window-minutes', default=None, type=click.IntRange(min=1), help='Window size in minutes')
@click.option('--metrics-port', default=None, type=int, help='Expose Prometheus metrics on this port')
@click.option('--log-format', type=click.Choice(['console', 'json']), default=None, help='Log output format')
@click.option('--verbose', '-v', is_flag=True, help='Verbose logging')
def main(input_file, kafka_servers, topic, consumer_group, sink_type, redis_host,
         window_minutes, metrics_port, log_format, verbose):
    """Find the driver with the most tips in each hour."""
    config = HourlyTipsConfig.from_env()

    if kafka_servers:
        config.kafka.bootstrap_servers = kafka_servers
    if topic:
        config.kafka.topic = topic
    if consumer_group:
        config.kafka.consumer_group = consumer_group
    if redis_host:
        config.redis.host = redis_host
    if window_minutes:
        config.window = WindowConfig(size=timedelta(minutes=window_minutes),
                                     max_tip_sum=config.window.max_tip_sum)
    if metrics_port:
        config.monitoring.enable_prometheus = True
        config.monitoring.metrics_port = metrics_port
    if log_format:
        config.logging.format = log_format
    if verbose:
        config.logging.level = 'DEBUG'

    configure_logging(config.logging.level, config.logging.format)

    source = iter_json_lines(input_file) if input_file else KafkaFareSource(config.kafka)
    sink = RedisMaxSink(config.redis) if sink_type == 'redis' else PrintSink()

    job = HourlyTipsJob(source, sink, config)
    try:
        job.execute()
    except Exception as e:
        logger.error("Hourly tips job failed", error=str(e))
        raise


if __name__ == '__main__':
    main()
