"""
Hourly tips pipeline.

Push-based composition of the aggregation stages:

    fare -> watermark gate -> keyed tip accumulator -> window emitter
         -> global max selector -> HourlyMaxRecord

Both windowed stages close on the same watermark. The emitter fires first
and all of its records reach the selector before the selector sees the
watermark, so a window's maximum is only chosen once every per-driver total
for that window exists.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import structlog

from hourly_tips.core.errors import HourlyTipsError
from hourly_tips.core.models.config import WindowConfig
from hourly_tips.core.models.events import FareEvent, HourlyMaxRecord, HourlyTipRecord
from hourly_tips.core.processors.max_selector import GlobalMaxSelector
from hourly_tips.core.processors.tips import KeyedTipAccumulator, WindowEmitter
from hourly_tips.core.utils.metrics import LATE_FARES
from hourly_tips.core.utils.watermarks import LateEventHandler, WatermarkTracker

logger = structlog.get_logger(__name__)


@dataclass
class PipelineStats:
    """Counters for one pipeline instance."""
    accepted: int = 0
    late_dropped: int = 0
    windows_fired: int = 0
    tip_records_emitted: int = 0
    max_records_emitted: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class HourlyTipsPipeline:
    """Per-driver hourly tip totals followed by the hourly maximum."""

    def __init__(self, config: Optional[WindowConfig] = None):
        self.config = config or WindowConfig()
        self.window_size_ms = self.config.size_ms

        self.watermarks = WatermarkTracker()
        self.late_event_handler = LateEventHandler()
        self.accumulator = KeyedTipAccumulator(self.window_size_ms, self.config.max_tip_sum)
        self.emitter = WindowEmitter(self.accumulator)
        self.selector = GlobalMaxSelector(self.window_size_ms)
        self.stats = PipelineStats()
        self._finished = False

    @property
    def current_watermark(self) -> Optional[int]:
        return self.watermarks.current_watermark

    def process(self, event: FareEvent) -> List[HourlyMaxRecord]:
        """
        Push one fare through the pipeline.

        Returns:
            HourlyMaxRecords for every window this event's timestamp closed

        Raises:
            HourlyTipsError: finish() has already been called
        """
        if self._finished:
            raise HourlyTipsError("Pipeline already finished")

        timestamp = event.event_time_millis

        if self.watermarks.is_late(timestamp, self.window_size_ms):
            action = self.late_event_handler.handle_late_event(
                event.driver_id, timestamp, self.watermarks.current_watermark
            )
            LATE_FARES.labels(action=action).inc()
            self.stats.late_dropped += 1
            return []

        self.accumulator.apply(event)
        self.stats.accepted += 1

        watermark = self.watermarks.advance(timestamp)
        return self._select(self.emitter.emit(watermark), watermark)

    def finish(self) -> List[HourlyMaxRecord]:
        """Close every open window at end of input. Later calls return nothing."""
        if self._finished:
            return []
        self._finished = True

        tip_records = self.emitter.flush()
        for record in tip_records:
            self.selector.add(record)
        results = self.selector.flush()
        self._count(tip_records, results)

        logger.info("Pipeline finished", **self.stats.to_dict())
        return results

    def _select(self, tip_records: List[HourlyTipRecord], watermark: int) -> List[HourlyMaxRecord]:
        for record in tip_records:
            self.selector.add(record)
        results = self.selector.on_watermark(watermark)
        self._count(tip_records, results)
        return results

    def _count(self, tip_records: List[HourlyTipRecord], results: List[HourlyMaxRecord]) -> None:
        self.stats.windows_fired = self.emitter.windows_fired
        self.stats.tip_records_emitted += len(tip_records)
        self.stats.max_records_emitted += len(results)
