"""
Shared Prometheus metrics for the hourly tips pipeline.

This module provides centralized metric definitions to avoid
duplicate registrations across different modules.
"""

from prometheus_client import Counter, Gauge, Histogram

# Event metrics
FARES_PROCESSED = Counter(
    'hourly_tips_fares_processed_total',
    'Total fare events processed',
    ['status']
)

# Late event metrics
LATE_FARES = Counter(
    'hourly_tips_late_fares_total',
    'Total fares arriving after their window closed',
    ['action']
)

# Window metrics
WINDOWS_FIRED = Counter(
    'hourly_tips_windows_fired_total',
    'Total windows closed',
    ['stage']
)

OPEN_WINDOWS = Gauge(
    'hourly_tips_open_windows',
    'Windows currently holding state',
    ['stage']
)

RECORDS_EMITTED = Counter(
    'hourly_tips_records_emitted_total',
    'Total records emitted',
    ['stage']
)

# Processing metrics
PROCESSING_DURATION = Histogram(
    'hourly_tips_processing_duration_seconds',
    'Time spent processing a fare event'
)

# Sink metrics
SINK_WRITES = Counter(
    'hourly_tips_sink_writes_total',
    'Sink write operations',
    ['sink', 'status']
)
