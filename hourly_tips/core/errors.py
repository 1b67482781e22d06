"""
Exceptions raised by the hourly tips pipeline.

Per-event errors (MalformedFareError) are isolated by the job runner and
never abort the stream. Stage-fatal errors (AccumulatorOverflowError)
propagate and terminate the job.
"""

from typing import Any, Dict, Optional


class HourlyTipsError(Exception):
    """Base class for pipeline errors."""


class MalformedFareError(HourlyTipsError):
    """A raw fare payload failed ingestion validation."""

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.payload = payload


class AccumulatorOverflowError(HourlyTipsError):
    """A running tip sum exceeded the configured representable range."""

    def __init__(self, driver_id: int, window_end: int, tip_sum, limit, reason: Optional[str] = None):
        super().__init__(
            f"Tip sum {tip_sum} for driver {driver_id} in window ending "
            f"{window_end} " + (reason or f"exceeds limit {limit}")
        )
        self.driver_id = driver_id
        self.window_end = window_end
        self.tip_sum = tip_sum
        self.limit = limit
