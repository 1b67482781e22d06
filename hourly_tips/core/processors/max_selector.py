"""
Global maximum selection over per-driver hourly totals.

Re-windows the HourlyTipRecord stream into the same tumbling buckets with a
single global key and keeps, per window, the record with the largest tip sum.
"""

import heapq
from typing import Dict, List, Optional

import structlog

from hourly_tips.core.models.events import HourlyMaxRecord, HourlyTipRecord
from hourly_tips.core.utils.metrics import OPEN_WINDOWS, RECORDS_EMITTED, WINDOWS_FIRED
from hourly_tips.core.utils.windowing import TumblingWindowAssigner

logger = structlog.get_logger(__name__)

STAGE = 'global_max'


class GlobalMaxSelector:
    """
    Per-window maximum by tip sum.

    A candidate replaces the current best only when its tip sum is strictly
    greater, so among equal sums the first record to arrive wins.
    """

    def __init__(self, window_size_ms: int):
        self.assigner = TumblingWindowAssigner(window_size_ms)
        self._best: Dict[int, HourlyTipRecord] = {}
        self._pending: List[int] = []
        self._closed_through: Optional[int] = None
        self.windows_fired = 0
        self.dropped_records = 0

    @property
    def open_windows(self) -> List[int]:
        return sorted(self._best)

    def current_best(self, window_end: int) -> Optional[HourlyTipRecord]:
        return self._best.get(window_end)

    def add(self, record: HourlyTipRecord) -> bool:
        """
        Offer a per-driver record to its window's group.

        Returns:
            False if the record's window has already fired and it was dropped
        """
        # A record carries its window's max timestamp, which lands it back in the same bucket
        key = self.assigner.assign(record.window_end - 1).end_millis

        if self._closed_through is not None and key <= self._closed_through:
            self.dropped_records += 1
            logger.warning("Record for fired window dropped",
                           stage=STAGE,
                           window_end=record.window_end,
                           driver_id=record.driver_id)
            return False

        best = self._best.get(key)
        if best is None:
            self._best[key] = record
            heapq.heappush(self._pending, key)
            OPEN_WINDOWS.labels(stage=STAGE).set(len(self._best))
        elif record.tip_sum > best.tip_sum:
            self._best[key] = record
        return True

    def on_watermark(self, watermark: int) -> List[HourlyMaxRecord]:
        """Emit the winner of every window closed by the watermark."""
        if self._closed_through is None or watermark > self._closed_through:
            self._closed_through = watermark

        results = []
        while self._pending and self._pending[0] <= watermark:
            results.append(self._fire(heapq.heappop(self._pending)))
        return results

    def flush(self) -> List[HourlyMaxRecord]:
        """Emit the winner of every remaining window (end of input)."""
        results = []
        while self._pending:
            key = heapq.heappop(self._pending)
            self._closed_through = key
            results.append(self._fire(key))
        return results

    def _fire(self, key: int) -> HourlyMaxRecord:
        winner = HourlyMaxRecord.from_tip_record(self._best.pop(key))
        self.windows_fired += 1
        WINDOWS_FIRED.labels(stage=STAGE).inc()
        RECORDS_EMITTED.labels(stage=STAGE).inc()
        OPEN_WINDOWS.labels(stage=STAGE).set(len(self._best))
        logger.debug("Hourly max selected",
                     window_end=winner.window_end,
                     driver_id=winner.driver_id,
                     tip_sum=str(winner.tip_sum))
        return winner
