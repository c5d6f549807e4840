import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from src.config import get_settings
from src.models.history import DecodedReport
from src.services.history_decoder import (
    DecodePriorities,
    build_series_catalog,
    datetime_to_keepa_time,
    decode_product,
    extract_metadata,
)
from src.services.keepa_client import InvalidAsin, get_keepa_client
from src.utils.pipeline_logger import log_decode, log_parser

ASIN_PATTERN = re.compile(r"^[A-Z0-9]{10}$")


def normalize_asin(raw: str) -> str:
    return re.sub(r"[^A-Z0-9]", "", (raw or "").upper())


def validate_asin(raw: str) -> str:
    """Normalise and validate an ASIN, raising InvalidAsin on bad input"""
    asin = normalize_asin(raw)
    if not asin:
        raise InvalidAsin("Please enter an ASIN")
    if not ASIN_PATTERN.match(asin):
        raise InvalidAsin("Please enter a valid 10-character ASIN")
    return asin


class RankCheckerAgent:
    def __init__(
        self,
        priorities: Optional[DecodePriorities] = None,
        series_indices: Optional[Dict[str, int]] = None,
    ):
        settings = get_settings()
        self.priorities = priorities or DecodePriorities(
            window=timedelta(days=settings.lowest_price_window_days),
            epoch=settings.keepa_epoch,
        )
        self.series_indices = series_indices or dict(settings.series_indices)

    def decode(
        self, product: Dict[str, Any], now: Optional[datetime] = None
    ) -> DecodedReport:
        metadata = extract_metadata(product)
        asin = metadata.get("asin") or ""
        catalog = build_series_catalog(product, self.series_indices)

        present = [name for name, series in catalog.items() if series]
        missing = [name for name, series in catalog.items() if not series]
        log_parser(asin=asin, present_series=present, missing_series=missing)

        report = decode_product(catalog, self.priorities, now=now, metadata=metadata)
        log_decode(asin=asin, metrics=report.metric_sources())
        return report

    async def check(
        self,
        raw_asin: str,
        domain_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> DecodedReport:
        asin = validate_asin(raw_asin)
        now = now or datetime.now(timezone.utc)
        since = datetime_to_keepa_time(
            now - self.priorities.window, epoch=self.priorities.epoch
        )

        product = await get_keepa_client().get_product(
            asin, domain_id=domain_id, since=since
        )
        product.setdefault("asin", asin)
        return self.decode(product, now=now)


rank_checker = RankCheckerAgent()
