#!/usr/bin/env python3
"""
Test script for the hourly tips job.

Runs the job end to end without Kafka or Redis by feeding in-memory
fare payloads and collecting the hourly winners.
"""

import io
import json
import os
import sys
from decimal import Decimal

import pytest
from click.testing import CliRunner

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from hourly_tips.core.errors import AccumulatorOverflowError
from hourly_tips.core.models.config import HourlyTipsConfig, WindowConfig
from hourly_tips.core.models.events import HourlyMaxRecord
from hourly_tips.core.sinks.print_sink import CollectSink
from hourly_tips.core.sources.kafka_source import decode_json, iter_json_lines
from hourly_tips.simple.stream_processor import HourlyTipsJob, main

HOUR_MS = 3_600_000


def payload(driver_id, tip, timestamp):
    return {'driverId': driver_id, 'tip': tip, 'eventTimeMillis': timestamp}


class ClosableSource:
    """Iterable source that records being closed."""

    def __init__(self, payloads):
        self.payloads = payloads
        self.closed = False

    def __iter__(self):
        return iter(self.payloads)

    def close(self):
        self.closed = True


class FlakySink(CollectSink):
    """Sink that rejects its first write."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def write(self, record):
        self.calls += 1
        if self.calls == 1:
            return False
        return super().write(record)


def test_job_end_to_end():
    """Run the job over two hours of fares, including bad and late ones."""
    print("🧪 Testing Hourly Tips Job...")

    source = ClosableSource([
        payload(1, '5.0', 0),
        payload(2, '3.0', 100),
        {'driverId': 3, 'tip': '-1.0', 'eventTimeMillis': 150},        # negative tip
        {'tip': '50.0', 'eventTimeMillis': 160},                         # no driver
        payload(3, '90.0', 'yesterday'),                                 # bad timestamp
        "not a fare",
        payload(1, '2.0', 200),
        payload(2, '1.0', HOUR_MS + 10),
        payload(2, '500.0', 300),                                        # late
        payload(4, '0.5', HOUR_MS + 20),
    ])
    sink = CollectSink()

    result = HourlyTipsJob(source, sink).execute()

    print(f"  📊 Result: {result.to_dict()}")
    assert sink.records == [
        HourlyMaxRecord(HOUR_MS, 1, Decimal('7.0')),
        HourlyMaxRecord(2 * HOUR_MS, 2, Decimal('1.0')),
    ]
    assert result.fares_received == 10
    assert result.fares_accepted == 5
    assert result.fares_malformed == 4
    assert result.fares_late == 1
    assert result.records_written == 2
    assert source.closed
    print("  ✅ Job end-to-end test passed!")


def test_malformed_fare_does_not_block_window_closure():
    sink = CollectSink()
    HourlyTipsJob([
        payload(1, '1.0', 0),
        payload(2, None, 10),
        payload(1, '1.0', HOUR_MS),
    ], sink).execute()

    assert [r.window_end for r in sink.records] == [HOUR_MS, 2 * HOUR_MS]


def test_sink_errors_are_counted():
    sink = FlakySink()
    result = HourlyTipsJob([payload(1, '1.0', 0), payload(2, '2.0', HOUR_MS)], sink).execute()

    assert result.sink_errors == 1
    assert result.records_written == 1
    assert sink.records == [HourlyMaxRecord(2 * HOUR_MS, 2, Decimal('2.0'))]


def test_overflow_stops_job():
    config = HourlyTipsConfig(window=WindowConfig(max_tip_sum=Decimal('10')))
    source = ClosableSource([payload(1, '8', 0), payload(1, '8', 1), payload(1, '1', 2)])

    with pytest.raises(AccumulatorOverflowError):
        HourlyTipsJob(source, CollectSink(), config).execute()
    assert source.closed


def test_stop_flushes_open_windows():
    sink = CollectSink()
    job = HourlyTipsJob([], sink)

    def stopping_source():
        yield payload(1, '4.0', 0)
        job.stop()
        yield payload(2, '9.0', 10)

    job.source = stopping_source()
    result = job.execute()

    assert result.fares_received == 1
    assert sink.records == [HourlyMaxRecord(HOUR_MS, 1, Decimal('4.0'))]


def test_json_lines_source():
    lines = io.StringIO("\n".join([
        json.dumps(payload(7, '2.5', 0)),
        "",
        "{broken",
        json.dumps(payload(8, '1.0', 5)),
    ]))
    payloads = list(iter_json_lines(lines))

    assert payloads == [payload(7, '2.5', 0), "{broken", payload(8, '1.0', 5)]
    assert decode_json(b'{"tip": "1"}') == {'tip': '1'}


def test_cli_with_input_file(tmp_path):
    """Run the click command against a JSON-lines file with the print sink."""
    fares_file = tmp_path / "fares.jsonl"
    fares_file.write_text("\n".join(json.dumps(p) for p in [
        payload(1, '5.0', 0),
        payload(2, '3.0', 100),
        payload(1, '2.0', 200),
    ]))

    runner = CliRunner()
    result = runner.invoke(main, ['--input-file', str(fares_file), '--log-format', 'json'])

    assert result.exit_code == 0, result.output
    assert "(3600000,1,7.0)" in result.output
