"""
Watermark and event-time utilities for the hourly tips pipeline.

This module provides utilities for:
- Event-time extraction
- Monotonous-timestamp watermark tracking
- Late event handling
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

from hourly_tips.core.utils.windowing import TimeWindow, assign_window

logger = structlog.get_logger(__name__)


class EventTimeExtractor:
    """Extract event timestamps from raw fare payloads."""

    @staticmethod
    def to_millis(timestamp: Any) -> int:
        """
        Convert a raw timestamp to milliseconds since epoch.

        Integers are taken as milliseconds. Strings may be an integer
        millisecond count or an ISO-8601 datetime (naive values are UTC).

        Raises:
            ValueError: if the value cannot be interpreted as a timestamp
        """
        if timestamp is None or isinstance(timestamp, bool):
            raise ValueError(f"Unparseable event timestamp: {timestamp!r}")

        if isinstance(timestamp, int):
            return timestamp
        if isinstance(timestamp, float):
            if timestamp != timestamp or timestamp in (float('inf'), float('-inf')):
                raise ValueError(f"Unparseable event timestamp: {timestamp!r}")
            return int(timestamp)
        if isinstance(timestamp, datetime):
            return EventTimeExtractor._datetime_to_millis(timestamp)
        if isinstance(timestamp, str):
            text = timestamp.strip()
            try:
                return int(text)
            except ValueError:
                pass
            try:
                dt = datetime.fromisoformat(text.replace('Z', '+00:00'))
            except ValueError:
                raise ValueError(f"Unparseable event timestamp: {timestamp!r}") from None
            return EventTimeExtractor._datetime_to_millis(dt)

        raise ValueError(f"Unparseable event timestamp: {timestamp!r}")

    @staticmethod
    def _datetime_to_millis(dt: datetime) -> int:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)


class WatermarkTracker:
    """
    Event-time progress for timestamp-monotone sources.

    The watermark is the largest event timestamp seen so far. It never
    regresses: an out-of-order event leaves it unchanged. A window is
    closed once the watermark reaches its end boundary.
    """

    def __init__(self):
        self._watermark: Optional[int] = None

    @property
    def current_watermark(self) -> Optional[int]:
        """The current watermark, or None before the first event."""
        return self._watermark

    def advance(self, event_timestamp: int) -> int:
        """Merge an event timestamp into the watermark and return the result."""
        if self._watermark is None or event_timestamp > self._watermark:
            self._watermark = event_timestamp
        return self._watermark

    def is_window_closed(self, window: TimeWindow) -> bool:
        return self._watermark is not None and self._watermark >= window.end_millis

    def is_late(self, event_timestamp: int, window_size_ms: int) -> bool:
        """Check whether an event's window has already been closed."""
        return self.is_window_closed(assign_window(event_timestamp, window_size_ms))


class LateEventHandler:
    """
    Handle events that arrive after their window has closed.

    Late events are dropped: they never reopen a window and never alter a
    record that was already emitted.
    """

    def __init__(self):
        self.late_events_count = 0
        self.max_lateness_ms = 0

    def handle_late_event(self, driver_id: int, event_timestamp: int, watermark: int) -> str:
        """
        Handle a late event.

        Returns:
            Action taken ('dropped')
        """
        self.late_events_count += 1
        lateness_ms = watermark - event_timestamp
        self.max_lateness_ms = max(self.max_lateness_ms, lateness_ms)

        logger.warning("Late fare dropped",
                       driver_id=driver_id,
                       event_time_millis=event_timestamp,
                       watermark=watermark,
                       lateness_ms=lateness_ms)
        return 'dropped'

    def get_statistics(self) -> Dict[str, Any]:
        """Get late event statistics."""
        return {
            'total_late_events': self.late_events_count,
            'max_lateness_ms': self.max_lateness_ms,
        }
