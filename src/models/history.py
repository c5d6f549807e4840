"""
Data model for decoded Keepa price / sales rank history
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Sequence, Union

# [keepa_time, value, keepa_time, value, ...]
RawSeries = Sequence[Optional[int]]

# Slot name (e.g. "buyBoxPrice") -> RawSeries
SeriesCatalog = Mapping[str, Optional[RawSeries]]

Number = Union[int, float]


@dataclass(frozen=True)
class Observation:
    """A single valid (timestamp, value) reading from a history series"""

    keepa_time: int
    timestamp: datetime
    value: Number


@dataclass(frozen=True)
class MetricResult:
    """Outcome of resolving one metric across the candidate series"""

    value: Number
    source_series: str
    timestamp: Optional[datetime] = None
    keepa_time: Optional[int] = None

    @classmethod
    def from_observation(cls, observation: Observation, source_series: str) -> "MetricResult":
        return cls(
            value=observation.value,
            source_series=source_series,
            timestamp=observation.timestamp,
            keepa_time=observation.keepa_time,
        )


@dataclass
class DecodedReport:
    """All metrics for one product plus pass-through metadata"""

    asin: Optional[str] = None
    title: Optional[str] = None
    category: Optional[str] = None
    availability: Optional[str] = None
    sales_rank: Optional[MetricResult] = None
    current_price: Optional[MetricResult] = None
    lowest_price: Optional[MetricResult] = None
    window_start: Optional[datetime] = None
    missing_series: list = field(default_factory=list)

    def metric_sources(self) -> dict:
        return {
            "sales_rank": self.sales_rank.source_series if self.sales_rank else None,
            "current_price": self.current_price.source_series if self.current_price else None,
            "lowest_price": self.lowest_price.source_series if self.lowest_price else None,
        }
