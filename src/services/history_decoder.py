"""
Keepa History Decoder
Turns raw Keepa csv history arrays into current rank / price figures

Keepa csv format: each csv[i] is [keepa_time, value, keepa_time, value, ...]
  - keepa_time = minutes since 2011-01-01 00:00 UTC
  - prices are integers in cents, sales ranks are plain integers
  - -1 means no data at that point in time
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple

from src.models.history import (
    DecodedReport,
    MetricResult,
    Observation,
    RawSeries,
    SeriesCatalog,
)

logger = logging.getLogger(__name__)

KEEPA_EPOCH = datetime(2011, 1, 1, tzinfo=timezone.utc)
NO_DATA = -1
PRICE_DIVISOR = 100

MAIN_CATEGORY_RANK = "mainCategoryRank"
SUB_CATEGORY_RANK = "subCategoryRank"
AMAZON_PRICE = "amazonPrice"
BUY_BOX_PRICE = "buyBoxPrice"
NEW_PRICE = "newPrice"

PRICE_SOURCE_LABELS = {
    AMAZON_PRICE: "Amazon",
    BUY_BOX_PRICE: "Buy Box",
    NEW_PRICE: "New",
}

DEFAULT_TITLE = "Product Title Not Available"
DEFAULT_CATEGORY = "Category Not Available"

Extractor = Callable[..., Optional[Observation]]


@dataclass
class DecodePriorities:
    """Ordered candidate series per metric, tried first to last"""

    rank_candidates: Tuple[str, ...] = (MAIN_CATEGORY_RANK, SUB_CATEGORY_RANK)
    current_price_candidates: Tuple[str, ...] = (AMAZON_PRICE, BUY_BOX_PRICE, NEW_PRICE)
    windowed_price_candidates: Tuple[str, ...] = (AMAZON_PRICE, BUY_BOX_PRICE, NEW_PRICE)
    window: timedelta = timedelta(days=30)
    price_divisor: int = PRICE_DIVISOR
    epoch: datetime = KEEPA_EPOCH

    @property
    def all_slots(self) -> Tuple[str, ...]:
        seen = []
        for name in (
            self.rank_candidates
            + self.current_price_candidates
            + self.windowed_price_candidates
        ):
            if name not in seen:
                seen.append(name)
        return tuple(seen)


def _is_number(raw: Any) -> bool:
    return isinstance(raw, (int, float)) and not isinstance(raw, bool)


def is_valid(raw: Any) -> bool:
    """True if raw is a real observation (not None, not -1, strictly positive)"""
    if raw is None or not _is_number(raw):
        return False
    if raw == NO_DATA:
        return False
    return raw > 0


def iter_pairs(series: Optional[RawSeries]) -> Iterator[Tuple[Any, Any]]:
    """Yield (keepa_time, value) pairs; an odd trailing entry is dropped"""
    if not series:
        return
    for i in range(0, len(series) - 1, 2):
        yield series[i], series[i + 1]


def keepa_time_to_datetime(keepa_minutes: int, epoch: datetime = KEEPA_EPOCH) -> datetime:
    """Convert Keepa time (minutes since epoch, default 2011-01-01 UTC) to an aware datetime"""
    return epoch + timedelta(minutes=keepa_minutes)


def datetime_to_keepa_time(dt: datetime, epoch: datetime = KEEPA_EPOCH) -> int:
    """Convert a datetime to Keepa time, floored to whole minutes"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int((dt - epoch).total_seconds() // 60)


def _decode_time(keepa_time: Any, epoch: datetime) -> Optional[datetime]:
    """Keepa time -> datetime, or None if the timestamp is not a usable number"""
    if not _is_number(keepa_time):
        return None
    try:
        return keepa_time_to_datetime(keepa_time, epoch)
    except (OverflowError, ValueError):
        logger.debug(f"Skipping unrepresentable Keepa timestamp {keepa_time!r}")
        return None


def _observation(
    keepa_time: Any, timestamp: datetime, raw_value: Any, divisor: Optional[int]
) -> Observation:
    value = raw_value / divisor if divisor else raw_value
    return Observation(keepa_time=keepa_time, timestamp=timestamp, value=value)


def latest_valid(
    series: Optional[RawSeries],
    divisor: Optional[int] = None,
    epoch: datetime = KEEPA_EPOCH,
) -> Optional[Observation]:
    """Most recent valid reading, walking the series from the end."""
    if not series:
        return None
    for i in range(len(series) // 2 - 1, -1, -1):
        keepa_time, raw_value = series[2 * i], series[2 * i + 1]
        if not is_valid(raw_value):
            continue
        timestamp = _decode_time(keepa_time, epoch)
        if timestamp is not None:
            return _observation(keepa_time, timestamp, raw_value, divisor)
    return None


def windowed_minimum(
    series: Optional[RawSeries],
    window_start: Optional[datetime] = None,
    divisor: Optional[int] = None,
    epoch: datetime = KEEPA_EPOCH,
) -> Optional[Observation]:
    """
    Lowest valid reading in the series, optionally only at or after window_start.

    Scans the whole series. On ties the earliest reading is kept.
    """
    lowest = None  # (keepa_time, timestamp, raw_value)
    if window_start is not None and window_start.tzinfo is None:
        window_start = window_start.replace(tzinfo=timezone.utc)

    for keepa_time, raw_value in iter_pairs(series):
        if not is_valid(raw_value):
            continue
        timestamp = _decode_time(keepa_time, epoch)
        if timestamp is None:
            continue
        if window_start is not None and timestamp < window_start:
            continue
        if lowest is None or raw_value < lowest[2]:
            lowest = (keepa_time, timestamp, raw_value)

    if lowest is None:
        return None
    return _observation(*lowest, divisor)


def resolve(
    candidates: Sequence[Tuple[str, Optional[RawSeries]]],
    extractor: Extractor,
    **extractor_kwargs: Any,
) -> Optional[MetricResult]:
    """
    Try each (name, series) candidate in order with the given extractor.

    The first candidate yielding an Observation wins; later candidates are
    never consulted.
    """
    for name, series in candidates:
        observation = extractor(series, **extractor_kwargs)
        if observation is not None:
            return MetricResult.from_observation(observation, source_series=name)
        logger.debug(f"No valid data in series {name}, trying next candidate")
    return None


def _candidates(catalog: SeriesCatalog, names: Sequence[str]):
    return [(name, catalog.get(name)) for name in names]


def build_series_catalog(
    product: Mapping[str, Any], series_indices: Mapping[str, int]
) -> Dict[str, Optional[RawSeries]]:
    """Map Keepa's numbered csv arrays onto named history slots"""
    csv_data = product.get("csv") or []
    catalog: Dict[str, Optional[RawSeries]] = {}
    for name, idx in series_indices.items():
        if isinstance(csv_data, (list, tuple)) and 0 <= idx < len(csv_data):
            catalog[name] = csv_data[idx]
        else:
            catalog[name] = None
    return catalog


def extract_metadata(product: Mapping[str, Any]) -> Dict[str, Optional[str]]:
    """Title, root category name and Amazon availability from a product payload"""
    category = None
    category_tree = product.get("categoryTree") or []
    if category_tree and isinstance(category_tree[0], dict):
        category = category_tree[0].get("name")

    availability_amazon = product.get("availabilityAmazon")
    if _is_number(availability_amazon) and availability_amazon >= 0:
        availability = "In Stock"
    else:
        availability = "Availability Unknown"

    return {
        "asin": product.get("asin"),
        "title": product.get("title") or DEFAULT_TITLE,
        "category": category or DEFAULT_CATEGORY,
        "availability": availability,
    }


def decode_product(
    catalog: SeriesCatalog,
    priorities: Optional[DecodePriorities] = None,
    now: Optional[datetime] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> DecodedReport:
    """
    Decode one product's history into a DecodedReport.

    Each metric is resolved on its own; a metric with no usable data is left
    as None without affecting the others.
    """
    priorities = priorities or DecodePriorities()
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    window_start = now - priorities.window
    metadata = metadata or {}

    sales_rank = resolve(
        _candidates(catalog, priorities.rank_candidates),
        latest_valid,
        epoch=priorities.epoch,
    )
    current_price = resolve(
        _candidates(catalog, priorities.current_price_candidates),
        latest_valid,
        divisor=priorities.price_divisor,
        epoch=priorities.epoch,
    )
    lowest_price = resolve(
        _candidates(catalog, priorities.windowed_price_candidates),
        windowed_minimum,
        window_start=window_start,
        divisor=priorities.price_divisor,
        epoch=priorities.epoch,
    )

    missing = [name for name in priorities.all_slots if not catalog.get(name)]

    return DecodedReport(
        asin=metadata.get("asin"),
        title=metadata.get("title"),
        category=metadata.get("category"),
        availability=metadata.get("availability"),
        sales_rank=sales_rank,
        current_price=current_price,
        lowest_price=lowest_price,
        window_start=window_start,
        missing_series=missing,
    )
