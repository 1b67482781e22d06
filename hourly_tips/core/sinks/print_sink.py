"""
In-process sinks: stdout printing and in-memory collection.
"""

import sys
from typing import List, Optional, TextIO

from hourly_tips.core.models.events import HourlyMaxRecord
from hourly_tips.core.utils.metrics import SINK_WRITES


class PrintSink:
    """Print each record as a (window_end, driver_id, tip_sum) tuple."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    def write(self, record: HourlyMaxRecord) -> bool:
        window_end, driver_id, tip_sum = record.as_tuple()
        print(f"({window_end},{driver_id},{tip_sum})", file=self.stream, flush=True)
        SINK_WRITES.labels(sink='print', status='success').inc()
        return True

    def close(self):
        pass


class CollectSink:
    """Keep records in memory."""

    def __init__(self):
        self.records: List[HourlyMaxRecord] = []

    def write(self, record: HourlyMaxRecord) -> bool:
        self.records.append(record)
        SINK_WRITES.labels(sink='collect', status='success').inc()
        return True

    def close(self):
        pass
