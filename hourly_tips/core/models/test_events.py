"""
Tests for fare ingestion and output records.
"""

import os
import sys
from datetime import timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))))

from hourly_tips.core.errors import MalformedFareError
from hourly_tips.core.models.config import DEFAULT_WINDOW_SIZE, HourlyTipsConfig, WindowConfig
from hourly_tips.core.models.events import FareEvent, HourlyMaxRecord, HourlyTipRecord


def test_fare_from_wire_payload():
    event = FareEvent.from_payload({
        'rideId': 42,
        'taxiId': 2013000001,
        'driverId': 2013000001,
        'eventTimeMillis': 1_704_067_200_000,
        'paymentType': 'CARD',
        'tip': '3.25',
        'tolls': '0',
        'totalFare': '19.75',
    })
    assert event.driver_id == 2013000001
    assert event.tip == Decimal('3.25')
    assert event.event_time_millis == 1_704_067_200_000
    assert event.ride_id == 42


def test_fare_accepts_field_names_and_iso_time():
    event = FareEvent.from_payload({
        'driver_id': 5,
        'tip': 0,
        'event_time_millis': '2024-01-01T00:00:00Z',
    })
    assert event.tip == 0
    assert event.event_time_millis == 1_704_067_200_000


def test_fare_is_immutable():
    event = FareEvent(driver_id=1, tip=Decimal('1'), event_time_millis=0)
    with pytest.raises(ValidationError):
        event.tip = Decimal('2')


def test_from_payload_passes_events_through():
    event = FareEvent(driver_id=1, tip=Decimal('1'), event_time_millis=0)
    assert FareEvent.from_payload(event) is event


@pytest.mark.parametrize("payload", [
    {'driverId': 1, 'eventTimeMillis': 0},                       # missing tip
    {'driverId': 1, 'tip': '-0.01', 'eventTimeMillis': 0},       # negative tip
    {'driverId': 1, 'tip': 'NaN', 'eventTimeMillis': 0},         # not a number
    {'tip': '1.0', 'eventTimeMillis': 0},                        # missing driver
    {'driverId': 1, 'tip': '1.0', 'eventTimeMillis': 'later'},   # unparseable timestamp
    {'driverId': 1, 'tip': '1.0'},                               # missing timestamp
])
def test_malformed_fares_rejected(payload):
    with pytest.raises(MalformedFareError) as exc_info:
        FareEvent.from_payload(payload)
    assert exc_info.value.payload == payload


def test_non_mapping_payload_rejected():
    with pytest.raises(MalformedFareError):
        FareEvent.from_payload("{not json")


def test_record_shapes():
    record = HourlyTipRecord(3_600_000, 1, Decimal('7.0'))
    assert record.as_tuple() == (3_600_000, 1, Decimal('7.0'))
    assert record.to_dict() == {'window_end': 3_600_000, 'driver_id': 1, 'tip_sum': '7.0'}

    winner = HourlyMaxRecord.from_tip_record(record)
    assert isinstance(winner, HourlyMaxRecord)
    assert winner.as_tuple() == record.as_tuple()


def test_window_config_defaults():
    config = WindowConfig()
    assert config.size == DEFAULT_WINDOW_SIZE
    assert config.size_ms == 3_600_000


@pytest.mark.parametrize("size", [timedelta(0), timedelta(minutes=-1), timedelta(microseconds=1500)])
def test_window_config_rejects_bad_sizes(size):
    with pytest.raises(ValidationError):
        WindowConfig(size=size)


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("HOURLY_TIPS_WINDOW_MINUTES", "15")
    monkeypatch.setenv("KAFKA_BOOTSTRAP_SERVERS", "broker:29092")
    monkeypatch.setenv("REDIS_HOST", "cache")
    monkeypatch.delenv("METRICS_PORT", raising=False)

    config = HourlyTipsConfig.from_env()
    assert config.window.size_ms == 15 * 60 * 1000
    assert config.kafka.bootstrap_servers == "broker:29092"
    assert config.redis.host == "cache"
    assert config.monitoring.enable_prometheus is False
