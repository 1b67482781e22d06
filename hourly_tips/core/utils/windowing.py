"""
Windowing utilities for stream processing.

Implements event-time tumbling windows: fixed-size, non-overlapping,
gapless buckets aligned to the epoch.
"""

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class TimeWindow:
    """Half-open event-time interval [start_millis, end_millis)."""

    start_millis: int
    end_millis: int

    @property
    def max_timestamp(self) -> int:
        """Largest timestamp that still belongs to the window."""
        return self.end_millis - 1

    def contains(self, timestamp: int) -> bool:
        return self.start_millis <= timestamp < self.end_millis


def assign_window(timestamp: int, window_size_ms: int) -> TimeWindow:
    """
    Map an event timestamp to the tumbling window it belongs to.

    Args:
        timestamp: Event timestamp in milliseconds
        window_size_ms: Window size in milliseconds

    Returns:
        The window whose interval contains the timestamp
    """
    if window_size_ms <= 0:
        raise ValueError(f"Window size must be positive, got {window_size_ms}")
    # Floor division keeps negative timestamps in the correct bucket
    start = (timestamp // window_size_ms) * window_size_ms
    return TimeWindow(start, start + window_size_ms)


class TumblingWindowAssigner:
    """Tumbling window assigner bound to a fixed window size."""

    def __init__(self, window_size_ms: int):
        """
        Initialize tumbling window assigner.

        Args:
            window_size_ms: Window size in milliseconds
        """
        if int(window_size_ms) != window_size_ms or window_size_ms <= 0:
            raise ValueError(f"Window size must be a positive whole number of ms, got {window_size_ms}")
        self.window_size_ms = int(window_size_ms)

    def assign(self, timestamp: int) -> TimeWindow:
        """Get the window for a timestamp."""
        return assign_window(timestamp, self.window_size_ms)

    def __repr__(self) -> str:
        return f"TumblingWindowAssigner(window_size_ms={self.window_size_ms})"
