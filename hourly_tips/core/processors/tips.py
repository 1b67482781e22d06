"""
Per-driver tip processors.

Contains the keyed tumbling-window accumulator that sums tips per
(window, driver) and the emitter that turns closed windows into
HourlyTipRecords.
"""

import heapq
from decimal import Decimal, Inexact, localcontext
from typing import Dict, List, Optional, Tuple

import structlog

from hourly_tips.core.errors import AccumulatorOverflowError
from hourly_tips.core.models.events import FareEvent, HourlyTipRecord
from hourly_tips.core.utils.metrics import OPEN_WINDOWS, RECORDS_EMITTED, WINDOWS_FIRED
from hourly_tips.core.utils.windowing import TimeWindow, TumblingWindowAssigner

logger = structlog.get_logger(__name__)

STAGE = 'per_driver'


class KeyedTipAccumulator:
    """
    Running tip sums keyed by (window, driver).

    State is a mapping window -> {driver_id: sum} plus a heap of pending
    windows ordered by end time. Per-driver dicts keep first-seen order.
    """

    def __init__(self, window_size_ms: int, max_tip_sum: Optional[Decimal] = None):
        self.assigner = TumblingWindowAssigner(window_size_ms)
        self.max_tip_sum = max_tip_sum
        self._state: Dict[TimeWindow, Dict[int, Decimal]] = {}
        self._pending: List[TimeWindow] = []
        self._closed_through: Optional[int] = None

    @property
    def open_windows(self) -> List[TimeWindow]:
        return sorted(self._state)

    def key_count(self, window: TimeWindow) -> int:
        return len(self._state.get(window, {}))

    def get_sum(self, window: TimeWindow, driver_id: int) -> Optional[Decimal]:
        return self._state.get(window, {}).get(driver_id)

    def apply(self, event: FareEvent) -> TimeWindow:
        """
        Add the event's tip to its (window, driver) sum.

        State is left untouched when either error is raised.

        Raises:
            AccumulatorOverflowError: the new sum exceeds max_tip_sum or
                cannot be represented exactly in the decimal context
            ValueError: the event's window has already been closed
        """
        window = self.assigner.assign(event.event_time_millis)
        if self._closed_through is not None and window.end_millis <= self._closed_through:
            raise ValueError(f"Window {window} is already closed")

        sums = self._state.get(window)
        current = sums.get(event.driver_id) if sums is not None else None
        total = event.tip if current is None else self._add(event, window, current)
        if self.max_tip_sum is not None and total > self.max_tip_sum:
            raise AccumulatorOverflowError(event.driver_id, window.end_millis, total, self.max_tip_sum)

        if sums is None:
            sums = {}
            self._state[window] = sums
            heapq.heappush(self._pending, window)
            OPEN_WINDOWS.labels(stage=STAGE).set(len(self._state))
        sums[event.driver_id] = total
        return window

    def _add(self, event: FareEvent, window: TimeWindow, current: Decimal) -> Decimal:
        # Rounded sums would depend on arrival order.
        with localcontext() as ctx:
            ctx.traps[Inexact] = True
            try:
                return current + event.tip
            except Inexact:
                raise AccumulatorOverflowError(
                    event.driver_id, window.end_millis, current, self.max_tip_sum,
                    reason=f"plus {event.tip} needs more than {ctx.prec} significant digits",
                ) from None

    def pop_closed(self, watermark: int) -> List[Tuple[TimeWindow, Dict[int, Decimal]]]:
        """Remove and return every window whose end is at or before the watermark."""
        if self._closed_through is None or watermark > self._closed_through:
            self._closed_through = watermark

        closed = []
        while self._pending and self._pending[0].end_millis <= watermark:
            window = heapq.heappop(self._pending)
            closed.append((window, self._state.pop(window)))
        if closed:
            OPEN_WINDOWS.labels(stage=STAGE).set(len(self._state))
        return closed

    def pop_all(self) -> List[Tuple[TimeWindow, Dict[int, Decimal]]]:
        """Remove and return every pending window, oldest first."""
        closed = []
        while self._pending:
            window = heapq.heappop(self._pending)
            closed.append((window, self._state.pop(window)))
            self._closed_through = window.end_millis
        OPEN_WINDOWS.labels(stage=STAGE).set(0)
        return closed


class WindowEmitter:
    """Emit one HourlyTipRecord per driver of each closed window."""

    def __init__(self, accumulator: KeyedTipAccumulator):
        self.accumulator = accumulator
        self.windows_fired = 0
        self.records_emitted = 0

    def emit(self, watermark: int) -> List[HourlyTipRecord]:
        """Fire all windows closed by the watermark."""
        return self._to_records(self.accumulator.pop_closed(watermark))

    def flush(self) -> List[HourlyTipRecord]:
        """Fire every remaining window (end of input)."""
        return self._to_records(self.accumulator.pop_all())

    def _to_records(self, closed: List[Tuple[TimeWindow, Dict[int, Decimal]]]) -> List[HourlyTipRecord]:
        records = []
        for window, sums in closed:
            for driver_id, tip_sum in sums.items():
                records.append(HourlyTipRecord(window.end_millis, driver_id, tip_sum))

            self.windows_fired += 1
            WINDOWS_FIRED.labels(stage=STAGE).inc()
            RECORDS_EMITTED.labels(stage=STAGE).inc(len(sums))
            logger.debug("Window fired",
                         stage=STAGE,
                         window_start=window.start_millis,
                         window_end=window.end_millis,
                         drivers=len(sums))

        self.records_emitted += len(records)
        return records
