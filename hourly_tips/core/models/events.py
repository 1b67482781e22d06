"""
Event data models for the hourly tips pipeline.

FareEvent is the validated input consumed from the source. HourlyTipRecord
and HourlyMaxRecord are the per-driver and per-window outputs.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hourly_tips.core.errors import MalformedFareError
from hourly_tips.core.utils.watermarks import EventTimeExtractor


class FareEvent(BaseModel):
    """Taxi fare event; only driver, tip and event time drive the aggregation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore')

    driver_id: int = Field(alias='driverId')
    tip: Decimal = Field(ge=0, allow_inf_nan=False)
    event_time_millis: int = Field(alias='eventTimeMillis')

    # Pass-through fields of the full fare record
    ride_id: Optional[int] = Field(default=None, alias='rideId')
    taxi_id: Optional[int] = Field(default=None, alias='taxiId')
    payment_type: Optional[str] = Field(default=None, alias='paymentType')
    tolls: Optional[Decimal] = None
    total_fare: Optional[Decimal] = Field(default=None, alias='totalFare')

    @field_validator('event_time_millis', mode='before')
    @classmethod
    def _parse_event_time(cls, value: Any) -> int:
        return EventTimeExtractor.to_millis(value)

    @classmethod
    def from_payload(cls, payload: Any) -> 'FareEvent':
        """
        Validate a raw payload into a FareEvent.

        Raises:
            MalformedFareError: missing or negative tip, missing driver,
                unparseable timestamp, or a payload that is not a mapping
        """
        if isinstance(payload, FareEvent):
            return payload
        if not isinstance(payload, Mapping):
            raise MalformedFareError(f"Fare payload must be a mapping, got {type(payload).__name__}")
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as e:
            fields = sorted({'.'.join(str(p) for p in err['loc']) for err in e.errors()})
            raise MalformedFareError(f"Invalid fare fields: {', '.join(fields)}",
                                     payload=dict(payload)) from e


@dataclass(frozen=True)
class HourlyTipRecord:
    """Total tips of one driver in one window."""
    window_end: int
    driver_id: int
    tip_sum: Decimal

    def as_tuple(self) -> Tuple[int, int, Decimal]:
        return (self.window_end, self.driver_id, self.tip_sum)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'window_end': self.window_end,
            'driver_id': self.driver_id,
            'tip_sum': str(self.tip_sum),
        }


@dataclass(frozen=True)
class HourlyMaxRecord(HourlyTipRecord):
    """The driver with the highest tip total in one window."""

    @classmethod
    def from_tip_record(cls, record: HourlyTipRecord) -> 'HourlyMaxRecord':
        return cls(record.window_end, record.driver_id, record.tip_sum)
